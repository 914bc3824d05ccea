"""
Speech listener contract.

This module defines the *interface only*: no capture, endpointing, or
recognition logic lives here.

Key invariants:
- listen() returns one final transcript per call.
- Silence, timeouts and no-match are routine and return "" (never raise).
- Cancellation (asyncio.CancelledError) stops capture promptly.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass

from spec import (
    LISTEN_COMPLETE_SILENCE_MS,
    LISTEN_MAX_UTTERANCE_MS,
    LISTEN_NO_SPEECH_TIMEOUT_MS,
    LISTEN_POSSIBLY_COMPLETE_SILENCE_MS,
)


@dataclass(frozen=True)
class ListenHints:
    """
    Endpointing hints for one listen() call.

    possibly_complete_silence_ms:
        Trailing silence after which the utterance may end if it already
        reads as a complete sentence.
    complete_silence_ms:
        Trailing silence after which the utterance always ends.
    """
    possibly_complete_silence_ms: int = LISTEN_POSSIBLY_COMPLETE_SILENCE_MS
    complete_silence_ms: int = LISTEN_COMPLETE_SILENCE_MS
    no_speech_timeout_ms: int = LISTEN_NO_SPEECH_TIMEOUT_MS
    max_utterance_ms: int = LISTEN_MAX_UTTERANCE_MS
    language: str | None = None


class SpeechListener(ABC):
    """
    Abstract interface for speech-to-text.

    Implementations are responsible for:
    - Capturing audio for one utterance
    - Deciding when the utterance ended (using the hints)
    - Returning the transcript

    Non-responsibilities:
    - No agent state machine logic
    - No decisions about what to do with the transcript
    """

    @abstractmethod
    async def listen(self, hints: ListenHints) -> str:
        """
        Capture and transcribe one utterance.

        Returns "" on silence, timeout, or no recognizable speech.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release devices and models. Default: nothing to release."""
        return None


class TypedInputOnlyListener(SpeechListener):
    """
    Listener used when no speech recognizer is available.

    listen() never returns on its own, so the agent loop is driven by typed
    input alone; it is cancelled like any other pending listen.
    """

    async def listen(self, hints: ListenHints) -> str:
        await asyncio.Event().wait()
        return ""
