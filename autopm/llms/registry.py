# autopm/llms/registry.py
from autopm.config import settings
from .base import GenerativeModel
from .openai_provider import OpenAIProvider


def get_provider(model_id: str | None = None) -> GenerativeModel:
    model = model_id or settings.MODEL_ID
    if not model:
        raise ValueError("MODEL_ID is not configured")

    # Accept either "openai:gpt-4o-mini" or plain "gpt-4o-mini"
    prefix, sep, actual = model.partition(":")
    if not sep:
        prefix, actual = "openai", model

    if prefix == "openai":
        return OpenAIProvider(
            model_id=actual or "gpt-4o-mini",
            api_key=settings.OPENAI_API_KEY,
            temperature=settings.LLM_TEMP,
            max_tokens=settings.LLM_MAX_TOKENS,
        )

    raise ValueError(f"Unknown model provider prefix: {prefix}")
