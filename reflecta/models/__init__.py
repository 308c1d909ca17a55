"""reflecta classification model implementations.

Concrete ModelProtocol implementations for the supported providers.
"""

from __future__ import annotations

from reflecta.models.anthropic import AnthropicModel
from reflecta.models.auto import configure_model
from reflecta.models.openai import OpenAIModel

__all__ = ["AnthropicModel", "OpenAIModel", "configure_model"]
