"""Pick a classification model from settings.

A missing (or placeholder) credential is not an error: no model is
returned and the migrator runs with classification disabled.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from reflecta.models.anthropic import DEFAULT_ANTHROPIC_MODEL
from reflecta.models.openai import DEFAULT_OPENAI_MODEL
from reflecta.protocols import ModelProtocol

if TYPE_CHECKING:
    from reflecta.config import Settings

logger = logging.getLogger(__name__)

_PROVIDER_DEFAULTS = {
    "openai": DEFAULT_OPENAI_MODEL,
    "anthropic": DEFAULT_ANTHROPIC_MODEL,
}


def detect_provider(settings: "Settings") -> Optional[str]:
    """Provider to use, or None when no credential is configured.

    Detection priority (when ``REFLECTA_MODEL_PROVIDER`` is not set):
    1. ``OPENAI_API_KEY`` (not the placeholder) → openai
    2. ``ANTHROPIC_API_KEY`` / ``CLAUDE_API_KEY`` → anthropic
    3. Nothing → None
    """
    forced = (settings.model_provider or "").lower().strip()
    if forced:
        return forced
    if settings.has_openai_key:
        return "openai"
    if settings.has_anthropic_key:
        return "anthropic"
    return None


def configure_model(settings: "Settings") -> Optional[ModelProtocol]:
    """Create the classification model described by ``settings``.

    Returns:
        A ModelProtocol instance, or None if the chosen provider has no
        usable credential or is unknown.
    """
    provider = detect_provider(settings)
    if provider is None:
        logger.warning("No classification API key configured; goal mapping is disabled")
        return None

    model_id = (settings.model or "").strip() or _PROVIDER_DEFAULTS.get(provider)

    if provider == "openai":
        if not settings.has_openai_key:
            logger.warning("OpenAI selected but OPENAI_API_KEY is missing or a placeholder")
            return None
        from reflecta.models.openai import OpenAIModel

        model = OpenAIModel(
            model_id=model_id,
            api_key=settings.openai_api_key.strip(),
            base_url=settings.openai_api_url,
        )
        logger.info("Configured OpenAIModel (model=%s)", model_id)
        return model

    if provider == "anthropic":
        if not settings.has_anthropic_key:
            logger.warning("Anthropic selected but no Anthropic API key is set")
            return None
        from reflecta.models.anthropic import AnthropicModel

        model = AnthropicModel(model_id=model_id, api_key=settings.anthropic_api_key.strip())
        logger.info("Configured AnthropicModel (model=%s)", model_id)
        return model

    logger.warning("Unknown model provider '%s', classification disabled", provider)
    return None
