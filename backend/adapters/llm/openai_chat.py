"""
OpenAI-compatible chat backend.

Works with OpenAI, Groq, OpenRouter, or any endpoint exposing the
chat.completions API, selected by base_url.
"""

from __future__ import annotations

from typing import Any

from openai import AsyncOpenAI, APIError, APITimeoutError, APIConnectionError

from adapters.llm.base import ChatResult, ReasoningBackend
from config import AppConfig
from observability.logger import log_event
from observability.metrics import timed
from spec import LLM_MAX_TOKENS, LLM_REQUEST_TIMEOUT_S, LLM_TEMPERATURE


_PROVIDER_BASE_URLS: dict[str, str] = {
    "groq": "https://api.groq.com/openai/v1",
    "openrouter": "https://openrouter.ai/api/v1",
}


def build_llm_client(config: AppConfig) -> AsyncOpenAI | None:
    """
    Build an LLM client with the provider selected by configuration.

    Returns None when no API key is configured for that provider.
    """
    api_key = config.llm_api_key
    if not api_key:
        return None

    base_url = config.llm_base_url or _PROVIDER_BASE_URLS.get(config.llm_provider.lower())
    return AsyncOpenAI(
        api_key=api_key,
        base_url=base_url,
        timeout=LLM_REQUEST_TIMEOUT_S,
        max_retries=0,
    )


def _first_line(message: str) -> str:
    stripped = message.strip()
    return stripped.splitlines()[0] if stripped else ""


class OpenAIChatBackend(ReasoningBackend):
    """
    Concrete chat backend over an AsyncOpenAI client.

    Design notes:
    - One instance serves sequential calls; the agent loop never overlaps them.
    - A missing client means "not configured" and is reported, not raised.
    """

    def __init__(
        self,
        *,
        client: Any | None,
        model: str,
        provider: str = "openai",
        temperature: float = LLM_TEMPERATURE,
        max_tokens: int = LLM_MAX_TOKENS,
    ) -> None:
        self._client = client
        self._model = model
        self._provider = provider
        self._temperature = temperature
        self._max_tokens = max_tokens

    @staticmethod
    def from_config(config: AppConfig) -> OpenAIChatBackend:
        return OpenAIChatBackend(
            client=build_llm_client(config),
            model=config.llm_model,
            provider=config.llm_provider,
        )

    async def chat(self, messages: list[dict[str, str]]) -> ChatResult:
        if self._client is None:
            return ChatResult.failure("backend not configured", not_configured=True)

        with timed("llm_chat_latency", details={"provider": self._provider, "model": self._model}) as details:
            try:
                response = await self._client.chat.completions.create(
                    model=self._model,
                    messages=messages,
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                )
            except APITimeoutError:
                details["ok"] = False
                return self._fail("request timed out")
            except APIConnectionError as e:
                details["ok"] = False
                return self._fail(f"connection failed: {_first_line(str(e))}")
            except APIError as e:
                details["ok"] = False
                return self._fail(_first_line(e.message or str(e)) or "API error")
            except Exception as e:  # pylint: disable=broad-exception-caught
                details["ok"] = False
                return self._fail(_first_line(str(e)) or type(e).__name__)

            text = self._extract_text(response)
            details["ok"] = text is not None

        if text is None:
            return self._fail("empty response")

        log_event({
            "event_type": "llm_reply",
            "provider": self._provider,
            "chars": len(text),
        })
        return ChatResult.success(text)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _fail(self, reason: str) -> ChatResult:
        log_event({
            "event_type": "llm_error",
            "level": "WARNING",
            "provider": self._provider,
            "reason": reason,
        })
        return ChatResult.failure(reason)

    @staticmethod
    def _extract_text(response: Any) -> str | None:
        """Extract message content from a chat.completions response, if any."""
        choices = getattr(response, "choices", None)
        if not choices:
            return None
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if not isinstance(content, str):
            return None
        return content
