"""
Persistent streaming TTS adapter (Cartesia-compatible WebSocket protocol).

Core model (IMPORTANT):
- One WebSocket connection is shared by every speak() call and stays open
  across turns. It is opened lazily and kept alive with protocol pings.
- At most one SynthesisSession exists at a time. A new speak() cancels the
  previous session first (local playback stopped, remote cancel sent).
- Every inbound message carries a context_id. Messages for any context other
  than the active session's are stale and ignored.

Inbound message handling:
- chunk      -> base64 PCM written to the session's playback sink
                (playback starts with the first chunk)
- chunk.done -> drain buffered audio, then complete the session
- done       -> same as chunk.done
- error      -> abort playback, fail the session (tier failure)
- timestamps -> ignored
- anything else -> logged, ignored

Failure model:
- Connect not established within the connect timeout -> SynthesisError
- No audio within the first-audio timeout, or no activity within the stall
  timeout -> SynthesisError
- Connection lost mid-session -> that speak() fails; reconnect is scheduled

Design constraints:
- Adapter never falls back to another tier (orchestrator-owned).
- Adapter never touches agent state.
"""

from __future__ import annotations

import asyncio
import base64
import json
import time
import urllib.parse
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from adapters.tts.base import SpeechSynthesizer, SynthesisError, SynthesisRequest
from audio.device import AudioDeviceError
from audio.playback import PlaybackSink, SinkFactory
from observability.logger import log_event
from observability.metrics import discard_timer, start_timer, stop_timer
from orchestrator.enums.connection import ConnectionState
from orchestrator.enums.tier import SynthesisTier
from spec import (
    CARTESIA_DEFAULT_MODEL_ID,
    CARTESIA_DEFAULT_VOICE_ID,
    CARTESIA_VERSION,
    CARTESIA_WS_URL,
    TTS_CONNECT_POLL_MS,
    TTS_CONNECT_TIMEOUT_MS,
    TTS_CONTEXT_ID_CHARS,
    TTS_DRAIN_GRACE_MS,
    TTS_FIRST_AUDIO_TIMEOUT_MS,
    TTS_KEEPALIVE_INTERVAL_S,
    TTS_RECONNECT_BACKOFF_MS,
    TTS_SAMPLE_RATE_HZ,
    TTS_STALL_TIMEOUT_S,
    TTS_WS_MAX_MESSAGE_BYTES,
)


class SessionOutcome(str, Enum):
    """How a session's completion future resolved (failures resolve with an exception)."""

    DONE = "DONE"
    CANCELLED = "CANCELLED"


@dataclass
class SynthesisSession:
    """
    Mutable per-request bookkeeping.

    The completion future is one-shot: resolved exactly once, by whichever of
    done / error / cancel / connection loss happens first.
    """
    context_id: str
    sink: PlaybackSink
    completion: asyncio.Future[SessionOutcome]
    started_at: float = field(default_factory=time.monotonic)
    last_activity: float = field(default_factory=time.monotonic)
    chunks: int = 0
    draining: bool = False
    drain_task: asyncio.Task[None] | None = None
    ttfa_timer: str | None = None

    @property
    def is_speaking(self) -> bool:
        return self.chunks > 0 and not self.completion.done()


class CartesiaStreamingSynthesizer(SpeechSynthesizer):
    """
    Streaming synthesis over one persistent WebSocket.

    Public interface:
    - speak(request): synthesize and play; returns when playback finished
    - cancel(): stop the active session now (sync)
    - ensure_connected(): lazily open the connection; False on timeout
    - close(): tear down connection, tasks and playback
    """

    tier = SynthesisTier.STREAMING

    def __init__(
        self,
        *,
        api_key: str | None,
        model_id: str = CARTESIA_DEFAULT_MODEL_ID,
        voice_id: str = CARTESIA_DEFAULT_VOICE_ID,
        sink_factory: SinkFactory = PlaybackSink,
        connect: Callable[..., Any] = ws_connect,
        on_complete: Callable[[str], None] | None = None,
        first_audio_timeout_s: float = TTS_FIRST_AUDIO_TIMEOUT_MS / 1000,
        stall_timeout_s: float = TTS_STALL_TIMEOUT_S,
        drain_grace_s: float = TTS_DRAIN_GRACE_MS / 1000,
    ) -> None:
        self._api_key = api_key
        self._model_id = model_id
        self._voice_id = voice_id
        self._sink_factory = sink_factory
        self._connect_fn = connect
        self._on_complete = on_complete
        self._first_audio_timeout_s = first_audio_timeout_s
        self._stall_timeout_s = stall_timeout_s
        self._drain_grace_s = drain_grace_s

        self._ws: Any | None = None
        self._state = ConnectionState.DISCONNECTED
        self._connect_task: asyncio.Task[None] | None = None
        self._recv_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        # Fire-and-forget cancel sends; held here until they finish.
        self._cancel_sends: set[asyncio.Task[None]] = set()

        self._lock = asyncio.Lock()
        self._session: SynthesisSession | None = None
        self._closing = False

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    @property
    def connection_state(self) -> ConnectionState:
        return self._state

    @property
    def active_context_id(self) -> str | None:
        return self._session.context_id if self._session is not None else None

    @property
    def is_speaking(self) -> bool:
        return self._session is not None and self._session.is_speaking

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def speak(self, request: SynthesisRequest) -> None:
        if not self.configured:
            raise SynthesisError(self.tier, "not configured")

        if not await self.ensure_connected():
            raise SynthesisError(self.tier, f"connect failed ({self._state.value})")

        async with self._lock:
            # Last request wins: the old sink is closed before the new one opens.
            self.cancel()

            loop = asyncio.get_running_loop()
            session = SynthesisSession(
                context_id=uuid.uuid4().hex[:TTS_CONTEXT_ID_CHARS],
                sink=self._sink_factory(),
                completion=loop.create_future(),
            )
            session.ttfa_timer = start_timer("tts_time_to_first_audio")
            self._session = session
            ws = self._ws

        log_event({
            "event_type": "tts_stream_request",
            "context_id": session.context_id,
            "chars": len(request.text),
            "language": request.language,
        })

        try:
            if ws is None:
                self._fail_session(session, "connection dropped before send")
            else:
                try:
                    await ws.send(json.dumps(self._build_request(request, session.context_id)))
                except (ConnectionClosed, WebSocketException, OSError) as e:
                    self._fail_session(session, f"send failed: {e!r}")

            outcome = await self._await_completion(session)
        except asyncio.CancelledError:
            if self._session is session:
                self.cancel()
            raise

        log_event({
            "event_type": "tts_stream_finished",
            "context_id": session.context_id,
            "outcome": outcome.value,
            "chunks": session.chunks,
        })

    def cancel(self) -> None:
        session = self._session
        if session is None:
            return
        self._session = None

        self._close_session(session, SessionOutcome.CANCELLED)

        ws = self._ws
        if ws is not None and self._state == ConnectionState.CONNECTED:
            task = asyncio.create_task(self._send_cancel(ws, session.context_id))
            self._cancel_sends.add(task)
            task.add_done_callback(self._cancel_sends.discard)

        log_event({
            "event_type": "tts_stream_cancelled",
            "context_id": session.context_id,
            "chunks": session.chunks,
        })

    async def ensure_connected(self) -> bool:
        """
        Make sure the shared connection is open.

        Starts a connect attempt if none is in flight, then polls the
        connection state until it is CONNECTED or the connect timeout passes.
        """
        if self._state == ConnectionState.CONNECTED and self._ws is not None:
            return True

        if self._connect_task is None or self._connect_task.done():
            self._start_connect()

        poll_s = TTS_CONNECT_POLL_MS / 1000
        deadline = time.monotonic() + TTS_CONNECT_TIMEOUT_MS / 1000
        while time.monotonic() < deadline:
            if self._state == ConnectionState.CONNECTED:
                return True
            if self._state == ConnectionState.ERROR and (
                self._connect_task is None or self._connect_task.done()
            ):
                return False
            await asyncio.sleep(poll_s)

        log_event({
            "event_type": "tts_stream_connect_timeout",
            "level": "WARNING",
            "timeout_ms": TTS_CONNECT_TIMEOUT_MS,
        })
        return self._state == ConnectionState.CONNECTED

    async def close(self) -> None:
        self._closing = True
        self.cancel()
        if self._cancel_sends:
            await asyncio.gather(*self._cancel_sends, return_exceptions=True)

        for task in (self._reconnect_task, self._connect_task, self._recv_task):
            if task is not None and not task.done():
                task.cancel()
        self._reconnect_task = None
        self._connect_task = None
        self._recv_task = None

        ws = self._ws
        self._ws = None
        self._state = ConnectionState.DISCONNECTED
        if ws is not None:
            try:
                await ws.close()
            except (ConnectionClosed, WebSocketException, OSError):
                pass

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    def _build_url(self) -> str:
        qs = urllib.parse.urlencode({
            "api_key": self._api_key or "",
            "cartesia_version": CARTESIA_VERSION,
        })
        return f"{CARTESIA_WS_URL}?{qs}"

    def _start_connect(self) -> None:
        self._state = ConnectionState.CONNECTING
        self._connect_task = asyncio.create_task(self._connect())

    async def _connect(self) -> None:
        try:
            ws = await self._connect_fn(
                self._build_url(),
                ping_interval=TTS_KEEPALIVE_INTERVAL_S,
                max_size=TTS_WS_MAX_MESSAGE_BYTES,
            )
        except asyncio.CancelledError:
            self._state = ConnectionState.DISCONNECTED
            raise
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._state = ConnectionState.ERROR
            log_event({
                "event_type": "tts_stream_connect_failed",
                "level": "WARNING",
                "error": repr(e),
            })
            return

        if self._closing:
            await ws.close()
            return

        self._ws = ws
        self._state = ConnectionState.CONNECTED
        self._recv_task = asyncio.create_task(self._recv_loop(ws))
        log_event({"event_type": "tts_stream_connected"})

    def _on_connection_lost(self, ws: Any, reason: str) -> None:
        if self._ws is not ws:
            return

        self._ws = None
        self._state = ConnectionState.ERROR
        log_event({
            "event_type": "tts_stream_connection_lost",
            "level": "WARNING",
            "reason": reason,
        })

        session = self._session
        if session is not None:
            self._fail_session(session, f"connection lost: {reason}")

        if not self._closing:
            self._reconnect_task = asyncio.create_task(self._reconnect_after_backoff())

    async def _reconnect_after_backoff(self) -> None:
        await asyncio.sleep(TTS_RECONNECT_BACKOFF_MS / 1000)
        if self._closing or self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            return
        log_event({"event_type": "tts_stream_reconnecting"})
        self._start_connect()

    async def _send_cancel(self, ws: Any, context_id: str) -> None:
        try:
            await ws.send(json.dumps({"context_id": context_id, "cancel": True}))
        except (ConnectionClosed, WebSocketException, OSError) as e:
            log_event({
                "event_type": "tts_stream_cancel_send_failed",
                "context_id": context_id,
                "error": repr(e),
            })

    # -------------------------------------------------------------------------
    # Background loops
    # -------------------------------------------------------------------------

    async def _recv_loop(self, ws: Any) -> None:
        reason = "closed"
        try:
            async for raw in ws:
                try:
                    data = json.loads(raw)
                except (TypeError, ValueError) as e:
                    log_event({
                        "event_type": "tts_stream_bad_message",
                        "level": "WARNING",
                        "error": str(e),
                    })
                    continue
                if isinstance(data, dict):
                    await self._handle_message(data)
        except asyncio.CancelledError:
            reason = "cancelled"
            raise
        except ConnectionClosed as e:
            reason = f"closed: {e.rcvd.code if e.rcvd else 'no close frame'}"
        except Exception as e:  # pylint: disable=broad-exception-caught
            reason = repr(e)
        finally:
            if reason != "cancelled":
                self._on_connection_lost(ws, reason)

    async def _handle_message(self, data: dict[str, Any]) -> None:
        msg_type = data.get("type")
        context_id = data.get("context_id")

        async with self._lock:
            session = self._session
            if session is None or context_id != session.context_id:
                log_event({
                    "event_type": "tts_stream_stale_message",
                    "level": "DEBUG",
                    "type": msg_type,
                    "context_id": context_id,
                })
                return

            if msg_type == "chunk":
                try:
                    self._on_chunk(session, data)
                except AudioDeviceError as e:
                    self._fail_session(session, f"playback failed: {e}")
                    return
                if data.get("done"):
                    self._begin_drain(session)

            elif msg_type == "done":
                self._begin_drain(session)

            elif msg_type == "error":
                reason = str(data.get("error") or "unknown error")
                status = data.get("status_code")
                if status is not None:
                    reason = f"{reason} (status {status})"
                self._fail_session(session, reason)

            elif msg_type == "timestamps":
                pass

            else:
                log_event({
                    "event_type": "tts_stream_unknown_message",
                    "type": msg_type,
                    "context_id": context_id,
                })

    # -------------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------------

    def _on_chunk(self, session: SynthesisSession, data: dict[str, Any]) -> None:
        payload = data.get("data")
        if not payload:
            return
        try:
            audio = base64.b64decode(payload)
        except (TypeError, ValueError) as e:
            log_event({
                "event_type": "tts_stream_bad_chunk",
                "level": "WARNING",
                "context_id": session.context_id,
                "error": str(e),
            })
            return

        session.sink.write(audio)
        session.chunks += 1
        session.last_activity = time.monotonic()

        if session.chunks == 1 and session.ttfa_timer is not None:
            stop_timer(session.ttfa_timer, details={"context_id": session.context_id})
            session.ttfa_timer = None

    def _begin_drain(self, session: SynthesisSession) -> None:
        if session.draining:
            return
        session.draining = True
        session.drain_task = asyncio.create_task(self._drain_then_complete(session))

    async def _drain_then_complete(self, session: SynthesisSession) -> None:
        await session.sink.drain(self._drain_grace_s)
        async with self._lock:
            if self._session is not session:
                return
            self._session = None
        self._close_session(session, SessionOutcome.DONE)
        if self._on_complete is not None:
            self._on_complete(session.context_id)

    def _fail_session(self, session: SynthesisSession, reason: str) -> None:
        if self._session is session:
            self._session = None
        session.sink.close()
        self._stop_session_tasks(session)
        if not session.completion.done():
            session.completion.set_exception(SynthesisError(self.tier, reason))
        log_event({
            "event_type": "tts_stream_failed",
            "level": "WARNING",
            "context_id": session.context_id,
            "reason": reason,
        })

    def _close_session(self, session: SynthesisSession, outcome: SessionOutcome) -> None:
        session.sink.close()
        self._stop_session_tasks(session)
        if not session.completion.done():
            session.completion.set_result(outcome)

    @staticmethod
    def _stop_session_tasks(session: SynthesisSession) -> None:
        if session.ttfa_timer is not None:
            discard_timer(session.ttfa_timer)
            session.ttfa_timer = None
        task = session.drain_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _await_completion(self, session: SynthesisSession) -> SessionOutcome:
        """
        Wait for the session to resolve, enforcing first-audio and stall timeouts.

        Raises SynthesisError when the session failed or timed out.
        """
        while not session.completion.done():
            now = time.monotonic()
            if session.chunks == 0:
                remaining = session.started_at + self._first_audio_timeout_s - now
                timeout_reason = "no audio before first-audio timeout"
            elif session.draining:
                remaining = self._stall_timeout_s
                timeout_reason = ""
            else:
                remaining = session.last_activity + self._stall_timeout_s - now
                timeout_reason = "stream stalled"

            if remaining <= 0 and timeout_reason:
                self._fail_session(session, timeout_reason)
                break

            try:
                await asyncio.wait_for(asyncio.shield(session.completion), timeout=max(remaining, 0.01))
            except asyncio.TimeoutError:
                continue
            except SynthesisError:
                break

        return session.completion.result()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _build_request(self, request: SynthesisRequest, context_id: str) -> dict[str, Any]:
        return {
            "model_id": self._model_id,
            "transcript": request.text,
            "voice": {"mode": "id", "id": request.voice_id or self._voice_id},
            "language": request.language,
            "context_id": context_id,
            "output_format": {
                "container": "raw",
                "encoding": "pcm_s16le",
                "sample_rate": TTS_SAMPLE_RATE_HZ,
            },
            "continue": False,
        }
