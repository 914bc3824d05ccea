"""
Microphone speech listener (sounddevice capture + energy VAD + Whisper).

Core model:
- Each listen() opens the default input device, captures 20ms PCM16 frames
  and closes the device again before returning.
- The energy VAD decides when speech started; trailing silence decides when
  it ended:
    - after `possibly_complete_silence_ms`, a quick decode is run and the
      utterance ends if it already reads as a finished sentence
    - after `complete_silence_ms`, the utterance always ends
- No speech within `no_speech_timeout_ms` -> "" (routine, not an error).

Transcription runs in a worker thread so the event loop stays responsive.
"""

from __future__ import annotations

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

from adapters.asr.base import ListenHints, SpeechListener
from adapters.asr.whisper_adapter import WhisperBackendError, WhisperEngine
from audio.device import AudioDeviceError, close_stream, open_input_stream
from audio.pcm import pcm16le_to_float32
from audio.vad import EnergyVAD
from observability.logger import log_event
from observability.metrics import timed
from spec import MIC_FRAME_MS, MIC_SAMPLE_RATE_HZ, MIC_SAMPLES_PER_FRAME


# Frames kept from before speech onset so the first syllable is not clipped
_PRE_ROLL_FRAMES = 15

_SENTENCE_END = (".", "?", "!", "।")


FrameSource = Callable[[], Any]


@asynccontextmanager
async def microphone_frames() -> AsyncIterator[AsyncIterator[bytes]]:
    """Open the default input device and yield an async iterator of PCM16 frames."""
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[bytes] = asyncio.Queue()

    def _callback(indata: Any, _frames: int, _time: Any, status: Any) -> None:
        if status:
            loop.call_soon_threadsafe(log_event, {
                "event_type": "mic_status",
                "status": str(status),
            })
        loop.call_soon_threadsafe(queue.put_nowait, bytes(indata))

    async def _iterate() -> AsyncIterator[bytes]:
        while True:
            yield await queue.get()

    stream = open_input_stream(
        samplerate=MIC_SAMPLE_RATE_HZ,
        channels=1,
        dtype="int16",
        blocksize=MIC_SAMPLES_PER_FRAME,
        callback=_callback,
    )
    try:
        yield _iterate()
    finally:
        close_stream(stream)


class MicrophoneListener(SpeechListener):
    """
    SpeechListener over the local microphone.

    Design notes:
    - One Whisper engine per listener, reused across calls
    - frame_source is injectable so endpointing can run on recorded frames
    """

    def __init__(
        self,
        *,
        engine: WhisperEngine,
        frame_source: FrameSource = microphone_frames,
        vad_factory: Callable[[], EnergyVAD] = EnergyVAD,
    ) -> None:
        self._engine = engine
        self._frame_source = frame_source
        self._vad_factory = vad_factory
        self._engine_lock = asyncio.Lock()

    async def listen(self, hints: ListenHints) -> str:
        async with self._engine_lock:
            self._engine.reset()
            try:
                async with self._frame_source() as frames:
                    heard = await self._collect_utterance(frames, hints)
                if not heard:
                    return ""
                with timed("asr_transcribe") as details:
                    result = await asyncio.to_thread(self._engine.transcribe, language=hints.language)
                    details["chars"] = len(result.text)
            except (AudioDeviceError, WhisperBackendError) as e:
                log_event({
                    "event_type": "asr_failed",
                    "level": "WARNING",
                    "error": repr(e),
                })
                return ""
            finally:
                self._engine.reset()

        log_event({"event_type": "asr_final", "chars": len(result.text)})
        return result.text

    # ------------------------------------------------------------------
    # Endpointing
    # ------------------------------------------------------------------

    async def _collect_utterance(self, frames: AsyncIterator[bytes], hints: ListenHints) -> bool:
        """
        Feed frames into the engine buffer until the utterance ends.

        Returns True if speech was heard (buffer holds the utterance).
        """
        vad = self._vad_factory()
        pre_roll: deque[bytes] = deque(maxlen=_PRE_ROLL_FRAMES)
        started = False
        waited_ms = 0
        speech_ms = 0
        silence_ms = 0
        checked_possibly_complete = False

        async for frame in frames:
            voiced = vad.observe(pcm16le_to_float32(frame))

            if not started:
                waited_ms += MIC_FRAME_MS
                pre_roll.append(frame)
                if voiced:
                    started = True
                    for buffered in pre_roll:
                        self._engine.append_pcm16_frame(buffered)
                    pre_roll.clear()
                elif waited_ms >= hints.no_speech_timeout_ms:
                    log_event({"event_type": "asr_no_speech", "waited_ms": waited_ms})
                    return False
                continue

            self._engine.append_pcm16_frame(frame)
            speech_ms += MIC_FRAME_MS

            if voiced:
                silence_ms = 0
                checked_possibly_complete = False
            else:
                silence_ms += MIC_FRAME_MS

            if silence_ms >= hints.complete_silence_ms:
                return True

            if silence_ms >= hints.possibly_complete_silence_ms and not checked_possibly_complete:
                checked_possibly_complete = True
                if await self._reads_complete(hints):
                    return True

            if speech_ms >= hints.max_utterance_ms:
                log_event({"event_type": "asr_max_utterance", "speech_ms": speech_ms})
                return True

        return started

    async def _reads_complete(self, hints: ListenHints) -> bool:
        result = await asyncio.to_thread(self._engine.transcribe, language=hints.language)
        return result.text.rstrip().endswith(_SENTENCE_END)
