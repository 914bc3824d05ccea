"""
Batch TTS adapter (HTTP request/response).

Role in the system:
- Second synthesis tier, used when the streaming tier fails.
- One POST per request; the full WAV payload arrives before playback starts.
- The fixed-size WAV header is skipped and the PCM body is played to completion.

Architectural constraints:
- No retries, no fallback (orchestrator-owned).
- Vendor/network errors are converted to SynthesisError.
"""

from __future__ import annotations

from typing import Any

import httpx

from adapters.tts.base import SpeechSynthesizer, SynthesisError, SynthesisRequest
from audio.device import AudioDeviceError
from audio.playback import PlaybackSink, SinkFactory
from observability.logger import log_event
from orchestrator.enums.tier import SynthesisTier
from spec import (
    BATCH_REQUEST_TIMEOUT_S,
    BATCH_WAV_HEADER_BYTES,
    CARTESIA_BYTES_URL,
    CARTESIA_DEFAULT_MODEL_ID,
    CARTESIA_DEFAULT_VOICE_ID,
    CARTESIA_VERSION,
    TTS_DRAIN_GRACE_MS,
    TTS_SAMPLE_RATE_HZ,
)


class CartesiaBatchSynthesizer(SpeechSynthesizer):
    """
    Request/response synthesis over HTTP.

    Design:
    - One shared httpx.AsyncClient, created lazily
    - One playback sink per request, closed on completion or cancel
    """

    tier = SynthesisTier.BATCH

    def __init__(
        self,
        *,
        api_key: str | None,
        model_id: str = CARTESIA_DEFAULT_MODEL_ID,
        voice_id: str = CARTESIA_DEFAULT_VOICE_ID,
        url: str = CARTESIA_BYTES_URL,
        sink_factory: SinkFactory = PlaybackSink,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._model_id = model_id
        self._voice_id = voice_id
        self._url = url
        self._sink_factory = sink_factory
        self._client = client
        self._sink: PlaybackSink | None = None

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def speak(self, request: SynthesisRequest) -> None:
        if not self.configured:
            raise SynthesisError(self.tier, "not configured")

        audio = await self._fetch(request)
        pcm = audio[BATCH_WAV_HEADER_BYTES:]
        if not pcm:
            raise SynthesisError(self.tier, f"empty audio payload ({len(audio)} bytes)")

        self.cancel()
        sink = self._sink_factory()
        self._sink = sink
        try:
            sink.write(pcm)
            await sink.drain(TTS_DRAIN_GRACE_MS / 1000)
        except AudioDeviceError as e:
            raise SynthesisError(self.tier, f"playback failed: {e}") from e
        finally:
            sink.close()
            if self._sink is sink:
                self._sink = None

        log_event({
            "event_type": "tts_batch_finished",
            "chars": len(request.text),
            "pcm_bytes": len(pcm),
        })

    def cancel(self) -> None:
        sink = self._sink
        self._sink = None
        if sink is not None:
            sink.close()

    async def close(self) -> None:
        self.cancel()
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=BATCH_REQUEST_TIMEOUT_S)
        return self._client

    def _build_body(self, request: SynthesisRequest) -> dict[str, Any]:
        return {
            "model_id": self._model_id,
            "transcript": request.text,
            "voice": {"mode": "id", "id": request.voice_id or self._voice_id},
            "output_format": {
                "container": "wav",
                "encoding": "pcm_s16le",
                "sample_rate": TTS_SAMPLE_RATE_HZ,
            },
            "language": request.language,
        }

    async def _fetch(self, request: SynthesisRequest) -> bytes:
        headers = {
            "X-API-Key": self._api_key or "",
            "Cartesia-Version": CARTESIA_VERSION,
            "Content-Type": "application/json",
        }
        try:
            response = await self._http().post(
                self._url,
                json=self._build_body(request),
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise SynthesisError(self.tier, f"request failed: {e!r}") from e

        if response.status_code != 200:
            raise SynthesisError(
                self.tier,
                f"HTTP {response.status_code}: {response.text[:200]}",
            )
        return response.content
