"""
Reasoning backend contract.

Purpose:
- Define the interface for one request/response chat completion.
- Keep retries, timing policy, and apology wording OUT of the adapter.

Rules:
- chat() never raises for vendor/network failures; it returns ChatResult.failure.
- No knowledge of TTS, UI, or the agent state machine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ChatResult:
    """
    Outcome of one backend call.

    Exactly one of `text` / `error` is set.
    `error` is a short human-readable message, never a stack trace.
    """
    text: str | None = None
    error: str | None = None
    not_configured: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @staticmethod
    def success(text: str) -> ChatResult:
        return ChatResult(text=text)

    @staticmethod
    def failure(error: str, *, not_configured: bool = False) -> ChatResult:
        return ChatResult(error=error, not_configured=not_configured)


class ReasoningBackend(ABC):
    """
    Abstract base class for reasoning backends.

    The adapter is a *dumb pipe*:
    messages -> vendor -> reply text.

    Orchestrator responsibilities (NOT here):
    - When to call
    - Context construction
    - What to do with the reply (directives, speech)
    - How to voice failures
    """

    @abstractmethod
    async def chat(self, messages: list[dict[str, str]]) -> ChatResult:
        """
        Run one completion over the serialized messages.

        Contract:
        - Must resolve within the adapter's request timeout.
        - Must NOT retry internally.
        - Must convert vendor exceptions into ChatResult.failure.
        - Cancellation (asyncio.CancelledError) propagates normally.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release network resources. Default: nothing to release."""
        return None
