"""OpenAIModel: ModelProtocol implementation for OpenAI chat completions.

Wraps the ``openai`` Python SDK. The SDK is imported lazily so that
the module can be imported without having ``openai`` installed (the
import fails only when the class is instantiated).
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from reflecta.protocols import ModelCapabilities, ModelError, ModelMessage, ModelResponse

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "gpt-3.5-turbo"

_COMPLETIONS_SUFFIX = "/chat/completions"


class OpenAIModelError(ModelError):
    """Raised when the OpenAI SDK reports an error."""


def normalize_base_url(url: Optional[str]) -> Optional[str]:
    """Accept either an API base URL or a full chat-completions endpoint."""
    if not url or not url.strip():
        return None
    url = url.strip().rstrip("/")
    if url.endswith(_COMPLETIONS_SUFFIX):
        url = url[: -len(_COMPLETIONS_SUFFIX)]
    return url


class OpenAIModel:
    """ModelProtocol implementation backed by the OpenAI API.

    Usage::

        model = OpenAIModel(api_key="sk-...")
        response = model.generate([ModelMessage(role="user", content="Hello")])
    """

    def __init__(
        self,
        model_id: str = DEFAULT_OPENAI_MODEL,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        max_tokens: int = 300,
        timeout: Optional[float] = 60.0,
    ) -> None:
        try:
            import openai as _openai  # noqa: F811
        except ImportError:
            raise ImportError(
                "The 'openai' package is required for OpenAIModel. "
                "Install it with: pip install openai"
            ) from None

        if not api_key:
            raise ValueError("An API key is required. Pass api_key= or set OPENAI_API_KEY.")

        self._model_id = model_id
        self._max_tokens = max_tokens
        client_kwargs: dict[str, Any] = {"api_key": api_key, "timeout": timeout}
        resolved_url = normalize_base_url(base_url)
        if resolved_url:
            client_kwargs["base_url"] = resolved_url
        self._client = _openai.OpenAI(**client_kwargs)

    # ---- ModelProtocol properties ----

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def capabilities(self) -> ModelCapabilities:
        return ModelCapabilities(
            model_id=self._model_id,
            provider="openai",
            context_window=16_385,
            max_output_tokens=self._max_tokens,
            supports_json_mode=True,
        )

    # ---- Generate ----

    def generate(
        self,
        messages: list[ModelMessage],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system: Optional[str] = None,
    ) -> ModelResponse:
        """Generate a complete response via the chat completions API."""
        kwargs: dict[str, Any] = {
            "model": self._model_id,
            "messages": self._prepare_messages(messages, system),
            "max_tokens": max_tokens or self._max_tokens,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            response = self._client.chat.completions.create(**kwargs)
        except Exception as exc:
            logger.debug("OpenAI API generate failed: %s", exc, exc_info=True)
            raise self._classify_error(exc, "OpenAI API error") from exc

        return self._parse_response(response)

    # ---- Internal helpers ----

    def _prepare_messages(
        self,
        messages: list[ModelMessage],
        system: Optional[str],
    ) -> list[dict[str, Any]]:
        """Convert ModelMessages to OpenAI chat format, system first."""
        api_messages: list[dict[str, Any]] = []
        if system:
            api_messages.append({"role": "system", "content": system})
        for msg in messages:
            api_messages.append({"role": msg.role, "content": msg.content})
        return api_messages

    def _parse_response(self, response: Any) -> ModelResponse:
        """Convert an OpenAI response to ModelResponse.

        A response without choices or message text yields empty content,
        which the classifier treats as no match.
        """
        choices = getattr(response, "choices", None) or []
        content = ""
        stop_reason = None
        if choices:
            choice = choices[0]
            stop_reason = getattr(choice, "finish_reason", None)
            message = getattr(choice, "message", None)
            if message is not None:
                content = getattr(message, "content", None) or ""

        usage = {}
        if getattr(response, "usage", None):
            usage = {
                "input_tokens": response.usage.prompt_tokens,
                "output_tokens": response.usage.completion_tokens,
            }

        return ModelResponse(
            content=content,
            usage=usage,
            stop_reason=stop_reason,
            model_id=getattr(response, "model", None),
        )

    @staticmethod
    def _classify_error(exc: Exception, prefix: str) -> OpenAIModelError:
        """Classify an OpenAI SDK exception into an error class.

        Uses getattr on the SDK module so this works even when the
        openai package is mocked or partially available.
        """
        try:
            import openai as _openai
        except (ImportError, ModuleNotFoundError):
            return OpenAIModelError("unknown", f"{prefix}: {exc}")

        _checks: list[tuple[str, str, str]] = [
            ("RateLimitError", "rate_limit", "rate limited"),
            ("AuthenticationError", "auth", "auth failed"),
            ("APITimeoutError", "timeout", "timeout"),
        ]
        for attr, cls, label in _checks:
            exc_type = getattr(_openai, attr, None)
            if isinstance(exc_type, type) and isinstance(exc, exc_type):
                return OpenAIModelError(cls, f"{prefix}: {label}: {exc}")

        api_status = getattr(_openai, "APIStatusError", None)
        if isinstance(api_status, type) and isinstance(exc, api_status):
            code = getattr(exc, "status_code", "?")
            return OpenAIModelError("server", f"{prefix}: API error ({code}): {exc}")

        return OpenAIModelError("unknown", f"{prefix}: {exc}")
