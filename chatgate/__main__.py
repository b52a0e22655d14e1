"""Run the gateway with uvicorn: ``python -m chatgate``."""

import uvicorn

from chatgate.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "chatgate.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_config=None,
    )


if __name__ == "__main__":
    main()
