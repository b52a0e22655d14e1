"""Model catalog and per-tier model selection."""

from chatgate.models import ModelCatalog, ModelInfo, Tier

AVAILABLE_MODELS: dict[Tier, tuple[str, ...]] = {
    Tier.FREE: (
        "meta-llama/llama-3.1-8b-instruct:free",
        "google/gemma-2-9b-it:free",
        "mistralai/mistral-7b-instruct:free",
    ),
    Tier.PRO: (
        "anthropic/claude-3.5-sonnet",
        "openai/gpt-4o",
        "openai/gpt-4o-mini",
        "google/gemini-pro-1.5",
        "meta-llama/llama-3.1-70b-instruct",
        "deepseek/deepseek-r1",
    ),
}

# Used whenever a paid account asks for deep reasoning
THINKING_MODEL = "deepseek/deepseek-r1"

DEFAULT_MODEL: dict[Tier, str] = {
    Tier.FREE: "meta-llama/llama-3.1-8b-instruct:free",
    Tier.PRO: "openai/gpt-4o-mini",
}

DISPLAY_NAMES = {
    "meta-llama/llama-3.1-8b-instruct:free": "Llama 3.1 8B (Free)",
    "google/gemma-2-9b-it:free": "Gemma 2 9B (Free)",
    "mistralai/mistral-7b-instruct:free": "Mistral 7B (Free)",
    "anthropic/claude-3.5-sonnet": "Claude 3.5 Sonnet",
    "openai/gpt-4o": "GPT-4o",
    "openai/gpt-4o-mini": "GPT-4o Mini",
    "google/gemini-pro-1.5": "Gemini Pro 1.5",
    "meta-llama/llama-3.1-70b-instruct": "Llama 3.1 70B",
    "deepseek/deepseek-r1": "DeepSeek R1",
}


def allowed_models(is_paid: bool) -> list[str]:
    """Paid accounts get the free list plus the pro list."""
    if is_paid:
        return [*AVAILABLE_MODELS[Tier.FREE], *AVAILABLE_MODELS[Tier.PRO]]
    return list(AVAILABLE_MODELS[Tier.FREE])


def default_model(is_paid: bool) -> str:
    return DEFAULT_MODEL[Tier.PRO if is_paid else Tier.FREE]


def is_model_allowed(model: str, is_paid: bool) -> bool:
    return model in allowed_models(is_paid)


def select_model(requested: str | None, is_paid: bool, thinking_mode: bool = False) -> str:
    """
    Pick the model actually sent upstream.

    Deep reasoning wins over an explicit request for paid accounts. A model the
    tier may not use is replaced by the tier default rather than rejected.
    """
    model = requested or default_model(is_paid)

    if thinking_mode and is_paid:
        model = THINKING_MODEL

    if not is_model_allowed(model, is_paid):
        model = default_model(is_paid)

    return model


def display_name(model_id: str) -> str:
    return DISPLAY_NAMES.get(model_id, model_id)


def build_catalog() -> ModelCatalog:
    """Public catalog listing, no auth needed."""
    return ModelCatalog(
        models={
            tier.value: [
                ModelInfo(id=model_id, name=display_name(model_id), tier=tier)
                for model_id in AVAILABLE_MODELS[tier]
            ]
            for tier in (Tier.FREE, Tier.PRO)
        },
        defaults={tier.value: DEFAULT_MODEL[tier] for tier in (Tier.FREE, Tier.PRO)},
    )
