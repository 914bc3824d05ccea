"""
Low-latency PCM playback sink.

Wraps a sounddevice RawOutputStream. Writers push PCM16 bytes without
blocking; the device callback pulls from an internal buffer and pads with
silence on underrun.

Lifecycle:
- Created per synthesis session
- Stream starts on the first write (playback begins with the first chunk)
- write() raises AudioDeviceError when no output device can be opened
- close() stops playback immediately and is idempotent
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Callable

from audio.device import AudioDeviceError, close_stream, open_output_stream
from observability.logger import log_event
from spec import (
    AUDIO_CHANNELS,
    PLAYBACK_BLOCK_FRAMES,
    PLAYBACK_LATENCY,
    TTS_SAMPLE_RATE_HZ,
    pcm_duration_s,
)


class PlaybackSink:
    """
    Buffered PCM16 mono output to the default audio device.

    Thread model:
    - write()/close() run on the event loop thread
    - _callback() runs on the PortAudio thread
    - _buffer is guarded by _lock
    """

    def __init__(self, sample_rate_hz: int = TTS_SAMPLE_RATE_HZ) -> None:
        self._sample_rate_hz = sample_rate_hz
        self._buffer = bytearray()
        self._lock = threading.Lock()
        self._stream: Any | None = None
        self._closed = False
        self._bytes_written = 0
        self._underruns = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def bytes_written(self) -> int:
        return self._bytes_written

    def write(self, pcm: bytes) -> None:
        """Queue PCM16 bytes for playback. Never blocks."""
        if self._closed or not pcm:
            return

        with self._lock:
            self._buffer.extend(pcm)
        self._bytes_written += len(pcm)

        if self._stream is None:
            self._open_stream()

    def buffered_seconds(self) -> float:
        with self._lock:
            pending = len(self._buffer)
        return pcm_duration_s(pending, self._sample_rate_hz)

    async def drain(self, grace_s: float = 0.0) -> None:
        """Wait until buffered audio has played out, then an extra grace period."""
        while not self._closed:
            remaining = self.buffered_seconds()
            if remaining <= 0:
                break
            await asyncio.sleep(min(remaining, 0.1))
        if grace_s > 0 and not self._closed:
            await asyncio.sleep(grace_s)

    def close(self) -> None:
        """Stop playback immediately and discard buffered audio."""
        if self._closed:
            return
        self._closed = True

        with self._lock:
            self._buffer.clear()

        stream = self._stream
        self._stream = None
        if stream is not None:
            try:
                close_stream(stream)
            except AudioDeviceError as e:
                log_event({
                    "event_type": "playback_close_failed",
                    "level": "WARNING",
                    "error": str(e),
                })

        log_event({
            "event_type": "playback_closed",
            "bytes_written": self._bytes_written,
            "underruns": self._underruns,
        })

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _open_stream(self) -> None:
        self._stream = open_output_stream(
            samplerate=self._sample_rate_hz,
            channels=AUDIO_CHANNELS,
            dtype="int16",
            blocksize=PLAYBACK_BLOCK_FRAMES,
            latency=PLAYBACK_LATENCY,
            callback=self._callback,
        )

    def _callback(self, outdata: Any, _frames: int, _time: Any, status: Any) -> None:
        if status:
            self._underruns += 1

        wanted = len(outdata)
        with self._lock:
            chunk = bytes(self._buffer[:wanted])
            del self._buffer[:wanted]

        if len(chunk) < wanted:
            chunk += b"\x00" * (wanted - len(chunk))
        outdata[:] = chunk


SinkFactory = Callable[[], PlaybackSink]
