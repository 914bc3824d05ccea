"""
Agent session.

Responsibilities:
- Build every agent collaborator from AppConfig
- Own the process-wide feeds that outlive one activation
  (conversation log, agent state, notifications)
- Start and stop activations; at most one runs at a time
- Release adapters (websocket, HTTP client, models) when an activation ends

Non-responsibilities:
- No turn logic (orchestrator.agent)
- No HTTP surface (server.routes)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable
from uuid import uuid4

from adapters.asr.base import SpeechListener, TypedInputOnlyListener
from adapters.asr.microphone import MicrophoneListener
from adapters.asr.whisper_adapter import WhisperBackendError, WhisperEngine
from adapters.llm.base import ReasoningBackend
from adapters.llm.openai_chat import OpenAIChatBackend
from adapters.tts.batch import CartesiaBatchSynthesizer
from adapters.tts.offline import Pyttsx3Synthesizer
from adapters.tts.streaming import CartesiaStreamingSynthesizer
from config import AppConfig
from context.conversation_log import Broadcast, ConversationLog
from observability.logger import log_event
from orchestrator.actions import ActionRouter
from orchestrator.agent import VoiceAgent
from orchestrator.enums.state import AgentState
from orchestrator.synthesis import SynthesisOrchestrator
from services.app_launcher import DesktopAppLauncher
from services.browser import SystemBrowser
from services.device_info import PsutilDeviceInfo
from services.notifications import Notification, NotificationFeed


# ---------------------------------------------------------------------
# Activation
# ---------------------------------------------------------------------


@dataclass
class Activation:
    """One VoiceAgent plus the adapters it must release when it ends."""

    agent: VoiceAgent
    synthesis: SynthesisOrchestrator
    backend: ReasoningBackend
    listener: SpeechListener

    async def release(self) -> None:
        for name, closer in (
            ("synthesis", self.synthesis.close),
            ("backend", self.backend.close),
            ("listener", self.listener.close),
        ):
            try:
                await closer()
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "session_release_failed",
                    "level": "WARNING",
                    "component": name,
                    "error": repr(e),
                })


ActivationFactory = Callable[["AgentSession"], Awaitable[Activation]]


def _log_playback_complete(context_id: str) -> None:
    log_event({"event_type": "tts_playback_complete", "context_id": context_id})


# ---------------------------------------------------------------------
# AgentSession
# ---------------------------------------------------------------------


class AgentSession:
    """
    Process-wide owner of the voice agent.

    The conversation log, state feed and notification feed are created once
    and shared by every activation, so subscribers survive stop/start.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        notifications: NotificationFeed | None = None,
        log: ConversationLog | None = None,
        activation_factory: ActivationFactory | None = None,
    ) -> None:
        self.config = config
        self.session_id = uuid4().hex
        self.notifications = notifications if notifications is not None else NotificationFeed()
        self.log = log if log is not None else ConversationLog()
        self.states: Broadcast[AgentState] = Broadcast("agent_state", replay=1)
        self.states.publish(AgentState.INACTIVE)

        self._activation_factory = activation_factory or build_activation
        self._activation: Activation | None = None
        self._task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

        # Loading a Whisper model is slow; keep it across activations.
        self._whisper: WhisperEngine | None = None
        self._whisper_failed = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> AgentState:
        return self.states.latest or AgentState.INACTIVE

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def agent(self) -> VoiceAgent | None:
        return self._activation.agent if self._activation is not None else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Start a new activation. Returns False if one is already running."""
        async with self._lock:
            if self.is_active:
                log_event({
                    "event_type": "session_start_rejected",
                    "session_id": self.session_id,
                    "reason": "already_active",
                })
                return False

            activation = await self._activation_factory(self)
            self._activation = activation
            self._task = asyncio.create_task(self._run(activation), name="voice-agent")

            log_event({
                "event_type": "session_started",
                "session_id": self.session_id,
            })
            return True

    async def stop(self) -> bool:
        """Stop the running activation and wait for it. False if none runs."""
        async with self._lock:
            task = self._task
            activation = self._activation
            if task is None or activation is None or task.done():
                return False

            activation.agent.stop()
            await asyncio.gather(task, return_exceptions=True)

            log_event({
                "event_type": "session_stopped",
                "session_id": self.session_id,
            })
            return True

    async def close(self) -> None:
        await self.stop()

    async def _run(self, activation: Activation) -> None:
        try:
            await activation.agent.run()
        finally:
            await activation.release()
            log_event({
                "event_type": "session_activation_ended",
                "session_id": self.session_id,
            })

    # ------------------------------------------------------------------
    # Control passthrough
    # ------------------------------------------------------------------

    def pause(self) -> bool:
        agent = self.agent
        return agent.pause() if agent is not None and self.is_active else False

    def resume(self) -> bool:
        agent = self.agent
        return agent.resume() if agent is not None and self.is_active else False

    def submit_text(self, text: str) -> bool:
        agent = self.agent
        if agent is None or not self.is_active:
            log_event({
                "event_type": "text_input_rejected",
                "reason": "agent_inactive",
            })
            return False
        return agent.submit_text(text)

    def push_notification(self, notification: Notification) -> None:
        self.notifications.push(notification)

    # ------------------------------------------------------------------
    # Component construction
    # ------------------------------------------------------------------

    async def speech_listener(self) -> SpeechListener:
        """Microphone listener, or typed input only when Whisper cannot load."""
        if self._whisper is None and not self._whisper_failed:
            config = self.config
            try:
                self._whisper = await asyncio.to_thread(
                    WhisperEngine,
                    model=config.whisper_model,
                    device=config.whisper_device,
                    compute_type=config.whisper_compute_type,
                    language=config.language,
                )
            except WhisperBackendError as e:
                self._whisper_failed = True
                log_event({
                    "event_type": "asr_unavailable",
                    "level": "WARNING",
                    "error": str(e),
                })

        if self._whisper is None:
            return TypedInputOnlyListener()
        return MicrophoneListener(engine=self._whisper)


def build_synthesis(config: AppConfig) -> SynthesisOrchestrator:
    """Streaming -> batch -> offline, in that priority order."""
    tiers = [
        CartesiaStreamingSynthesizer(
            api_key=config.cartesia_api_key,
            model_id=config.cartesia_model_id,
            voice_id=config.cartesia_voice_id,
            on_complete=_log_playback_complete,
        ),
        CartesiaBatchSynthesizer(
            api_key=config.cartesia_api_key,
            model_id=config.cartesia_model_id,
            voice_id=config.cartesia_voice_id,
        ),
        Pyttsx3Synthesizer(rate_wpm=config.offline_voice_rate),
    ]
    return SynthesisOrchestrator(
        tiers,
        language=config.language,
        voice_id=config.cartesia_voice_id,
        streaming_enabled=config.tts_use_streaming,
    )


async def build_activation(session: AgentSession) -> Activation:
    config = session.config
    sender = config.agent_name.upper()

    device = PsutilDeviceInfo()
    browser = SystemBrowser()
    router = ActionRouter(
        log=session.log,
        browser=browser,
        device=device,
        launcher=DesktopAppLauncher(),
        language=config.language,
        sender=sender,
    )

    listener = await session.speech_listener()
    backend = OpenAIChatBackend.from_config(config)
    synthesis = build_synthesis(config)

    agent = VoiceAgent(
        listener=listener,
        backend=backend,
        synthesis=synthesis,
        router=router,
        log=session.log,
        states=session.states,
        notifications=session.notifications,
        device=device,
        browser=browser,
        language=config.language,
        agent_name=config.agent_name,
        shutdown_phrases=config.shutdown_phrases,
    )
    return Activation(agent=agent, synthesis=synthesis, backend=backend, listener=listener)
