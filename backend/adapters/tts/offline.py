"""
Offline TTS adapter (system speech engine via pyttsx3).

Role in the system:
- Last synthesis tier; works without network access.
- Long text is split into chunks the engine accepts.
- Speech runs in a worker thread; the coroutine blocks until it finishes.

Cancellation:
- cancel() asks the engine to stop and prevents further chunks from starting.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Callable

import pyttsx3

from adapters.tts.base import SpeechSynthesizer, SynthesisError, SynthesisRequest
from observability.logger import log_event
from orchestrator.enums.tier import SynthesisTier
from spec import OFFLINE_DEFAULT_RATE_WPM, OFFLINE_MAX_CHUNK_CHARS


def split_for_offline(text: str, max_chars: int = OFFLINE_MAX_CHUNK_CHARS) -> list[str]:
    """
    Split text into chunks of at most max_chars.

    Prefers the last whitespace before the limit; hard-splits words longer
    than the limit. Empty chunks are never produced.
    """
    chunks: list[str] = []
    remaining = text.strip()
    while remaining:
        if len(remaining) <= max_chars:
            chunks.append(remaining)
            break
        cut = remaining.rfind(" ", 0, max_chars + 1)
        if cut <= 0:
            cut = max_chars
        head = remaining[:cut].strip()
        if head:
            chunks.append(head)
        remaining = remaining[cut:].strip()
    return chunks


class Pyttsx3Synthesizer(SpeechSynthesizer):
    """
    Local synthesis with the platform speech engine.

    Design:
    - Engine created lazily on the worker thread, reused afterwards
    - One speak() at a time (engine calls serialized by _engine_lock)
    """

    tier = SynthesisTier.OFFLINE

    def __init__(
        self,
        *,
        rate_wpm: int = OFFLINE_DEFAULT_RATE_WPM,
        engine_factory: Callable[[], Any] = pyttsx3.init,
    ) -> None:
        self._rate_wpm = rate_wpm
        self._engine_factory = engine_factory
        self._engine: Any | None = None
        self._engine_lock = threading.Lock()
        self._stop_requested = threading.Event()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def speak(self, request: SynthesisRequest) -> None:
        chunks = split_for_offline(request.text)
        if not chunks:
            return

        self._stop_requested.clear()
        try:
            await asyncio.to_thread(self._speak_blocking, chunks)
        except asyncio.CancelledError:
            self.cancel()
            raise

        log_event({
            "event_type": "tts_offline_finished",
            "chars": len(request.text),
            "chunks": len(chunks),
            "stopped": self._stop_requested.is_set(),
        })

    def cancel(self) -> None:
        self._stop_requested.set()
        engine = self._engine
        if engine is None:
            return
        try:
            engine.stop()
        except RuntimeError as e:
            log_event({
                "event_type": "tts_offline_stop_failed",
                "level": "WARNING",
                "error": str(e),
            })

    # ------------------------------------------------------------------
    # Worker thread
    # ------------------------------------------------------------------

    def _ensure_engine(self) -> Any:
        if self._engine is not None:
            return self._engine
        try:
            engine = self._engine_factory()
            engine.setProperty("rate", self._rate_wpm)
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise SynthesisError(self.tier, f"engine init failed: {e}") from e
        self._engine = engine
        return engine

    def _speak_blocking(self, chunks: list[str]) -> None:
        with self._engine_lock:
            engine = self._ensure_engine()
            for chunk in chunks:
                if self._stop_requested.is_set():
                    return
                try:
                    engine.say(chunk)
                    engine.runAndWait()
                except Exception as e:  # pylint: disable=broad-exception-caught
                    raise SynthesisError(self.tier, f"engine error: {e}") from e
