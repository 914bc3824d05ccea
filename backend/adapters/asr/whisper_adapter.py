# pyright: reportUnknownVariableType=false
# pyright: reportUnknownMemberType=false
# pyright: reportUnknownArgumentType=false
"""
Whisper ASR engine wrapper.

This module is deliberately "dumb":
- Accepts raw PCM16 (16kHz, mono) audio frames
- Converts to Whisper input format
- Runs transcription with faster-whisper
- Returns text (+ segment timestamps)

Must NOT:
- Capture audio
- Perform endpointing / silence detection
- Make orchestration decisions

The microphone listener owns capture, endpointing and cancellation, and
calls into this engine from a worker thread.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from faster_whisper import WhisperModel

from audio.pcm import pcm16le_to_float32
from spec import MIC_SAMPLE_RATE_HZ


# =============================================================================
# Public result types
# =============================================================================

@dataclass(frozen=True)
class WhisperSegment:
    """
    One timestamped segment of recognized speech.

    Times are in milliseconds relative to the start of the buffered audio.
    """
    start_ms: int
    end_ms: int
    text: str


@dataclass(frozen=True)
class WhisperResult:
    """Result of a transcription pass over the buffered audio."""
    text: str
    segments: tuple[WhisperSegment, ...] = ()
    language: str | None = None


class WhisperBackendError(RuntimeError):
    """Raised when the model cannot be loaded or a transcription call fails."""


class WhisperEngine:
    """
    Minimal Whisper inference wrapper (mechanism only).

    - Accepts PCM16 frames, returns text
    - Synchronous by design (caller must handle async via a worker thread)
    - Not bitwise-deterministic across runs, even at temperature=0
    """

    def __init__(
        self,
        *,
        model: str = "base",
        device: str | None = None,
        compute_type: str | None = None,
        language: str | None = None,
        backend: Any | None = None,
    ) -> None:
        self._language = language
        self._buffer: list[np.ndarray] = []

        if backend is not None:
            self._backend = backend
            return

        kwargs: dict[str, Any] = {}
        if device is not None:
            kwargs["device"] = device
        if compute_type is not None:
            kwargs["compute_type"] = compute_type
        try:
            self._backend = WhisperModel(model, **kwargs)
        except Exception as e:
            raise WhisperBackendError(f"Could not load Whisper model {model!r}: {e!r}") from e

    # -------------------------------------------------------------------------
    # Buffer lifecycle
    # -------------------------------------------------------------------------

    def reset(self) -> None:
        """Drop all buffered audio."""
        self._buffer.clear()

    def buffered_seconds(self, *, sample_rate_hz: int = MIC_SAMPLE_RATE_HZ) -> float:
        if not self._buffer:
            return 0.0
        n = int(sum(chunk.shape[0] for chunk in self._buffer))
        return float(n) / float(sample_rate_hz)

    def append_pcm16_frame(self, pcm_bytes: bytes) -> None:
        """Append one little-endian PCM16 mono frame to the internal buffer."""
        self._buffer.append(pcm16le_to_float32(pcm_bytes))

    def _concat_audio(self) -> np.ndarray:
        if not self._buffer:
            return np.zeros((0,), dtype=np.float32)
        if len(self._buffer) == 1:
            return self._buffer[0]
        return np.concatenate(self._buffer, axis=0)

    # -------------------------------------------------------------------------
    # Transcription
    # -------------------------------------------------------------------------

    def transcribe(
        self,
        *,
        language: str | None = None,
        prompt: str | None = None,
        temperature: float = 0.0,
    ) -> WhisperResult:
        """
        Transcribe the current buffer.

        Notes:
        - Empty buffer returns empty text
        - Blocking call (100-500ms typical for the base model)
        - vad_filter is off: endpointing is the listener's job
        """
        audio = self._concat_audio()
        if audio.size == 0:
            return WhisperResult(text="")

        kwargs: dict[str, Any] = {
            "language": language or self._language,
            "beam_size": 1,
            "temperature": temperature,
            "vad_filter": False,
        }
        if prompt:
            kwargs["initial_prompt"] = prompt

        try:
            segments_iter, info = self._backend.transcribe(audio, **kwargs)

            segments: list[WhisperSegment] = []
            text_parts: list[str] = []
            for seg in segments_iter:
                seg_text = str(getattr(seg, "text", "")).strip()
                if seg_text:
                    text_parts.append(seg_text)
                segments.append(WhisperSegment(
                    start_ms=int(seg.start * 1000),
                    end_ms=int(seg.end * 1000),
                    text=seg_text,
                ))
        except Exception as e:
            raise WhisperBackendError(f"Whisper transcription failed: {e!r}") from e

        return WhisperResult(
            text=" ".join(text_parts).strip(),
            segments=tuple(segments),
            language=getattr(info, "language", None),
        )
