"""
Speech synthesizer contract.

This module defines the *interface only*: no fallback policy, no retries,
no orchestration decisions live here.

Key invariants:
- speak() resolves when playback of the request has finished, or raises
  SynthesisError if this tier could not produce audio.
- Fallback between tiers is owned by the synthesis orchestrator.
  Tiers never call each other.
- Cancellation is explicit: cancel() stops local playback immediately and
  makes the in-flight speak() return (or raise CancelledError) promptly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from orchestrator.enums.tier import SynthesisTier


@dataclass(frozen=True)
class SynthesisRequest:
    """One speak() call."""
    text: str
    language: str = "en"
    voice_id: str | None = None


class SynthesisError(Exception):
    """A tier failed to produce audio for a request."""

    def __init__(self, tier: SynthesisTier, reason: str) -> None:
        super().__init__(f"{tier.value}: {reason}")
        self.tier = tier
        self.reason = reason


class SpeechSynthesizer(ABC):
    """
    Abstract interface for one synthesis tier.

    Implementations are responsible for:
    - Turning request text into audio and playing it to completion
    - Raising SynthesisError on any vendor/device failure
    - Supporting cancellation via cancel()

    Non-responsibilities:
    - No fallback to other tiers
    - No agent state machine logic
    - No decisions about *what* to say
    """

    tier: SynthesisTier

    @property
    def configured(self) -> bool:
        """False when this tier lacks credentials or a device and must be skipped."""
        return True

    @abstractmethod
    async def speak(self, request: SynthesisRequest) -> None:
        """
        Synthesize and play the request to completion.

        Contract:
        - Returns only after playback finished (or was cancelled).
        - Raises SynthesisError if no audio could be produced.
        - MUST NOT retry internally.
        - asyncio.CancelledError propagates after local playback is stopped.
        """
        raise NotImplementedError

    @abstractmethod
    def cancel(self) -> None:
        """
        Stop local playback of the in-flight request.

        Contract:
        - Synchronous: playback stops before cancel() returns.
        - Idempotent, and a no-op when nothing is playing.
        - Remote notification, if any, is best-effort and scheduled, not awaited.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release connections and devices. Default: cancel playback."""
        self.cancel()
