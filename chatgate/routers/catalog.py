"""Public model catalog."""

from fastapi import APIRouter

from chatgate.models import ModelCatalog
from chatgate.services.catalog import build_catalog

router = APIRouter(tags=["models"])


@router.get(
    "/models",
    response_model=ModelCatalog,
    summary="List available models",
    description="Models per tier and the tier defaults. No authentication required.",
)
async def list_models() -> ModelCatalog:
    return build_catalog()
