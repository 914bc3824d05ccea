# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from datetime import datetime
from typing import Any

from adapters.asr.base import ListenHints, SpeechListener
from adapters.llm.base import ChatResult, ReasoningBackend
from config import AppConfig
from orchestrator.actions import ActionRouter
from orchestrator.agent import VoiceAgent
from orchestrator.enums.state import AgentState
from session.agent_session import Activation, AgentSession


def make_config(**overrides: Any) -> AppConfig:
    values: dict[str, Any] = {
        "env": "test",
        "log_level": "INFO",
        "agent_name": "Jarvis",
        "language": "en",
        "shutdown_phrases": ("jarvis stop",),
        "whisper_model": "tiny",
        "whisper_device": None,
        "whisper_compute_type": None,
        "llm_provider": "openai",
        "llm_model": "gpt-4o-mini",
        "llm_base_url": None,
        "openai_api_key": None,
        "groq_api_key": None,
        "openrouter_api_key": None,
        "cartesia_api_key": None,
        "cartesia_voice_id": "voice",
        "cartesia_model_id": "model",
        "tts_use_streaming": True,
        "offline_voice_rate": 180,
    }
    values.update(overrides)
    return AppConfig(**values)


class QueueListener(SpeechListener):
    def __init__(self) -> None:
        self.transcripts: asyncio.Queue[str] = asyncio.Queue()
        self.closed = False

    async def listen(self, hints: ListenHints) -> str:
        return await self.transcripts.get()

    async def close(self) -> None:
        self.closed = True


class EchoBackend(ReasoningBackend):
    def __init__(self) -> None:
        self.closed = False

    async def chat(self, messages: list[dict[str, str]]) -> ChatResult:
        return ChatResult.success(f"You said {messages[-1]['content']}")

    async def close(self) -> None:
        self.closed = True


class SilentSynthesis:
    def __init__(self) -> None:
        self.spoken: list[str] = []
        self.closed = False

    async def speak(self, text: str, language: str | None = None) -> None:
        self.spoken.append(text)

    def cancel(self) -> None:
        return None

    async def close(self) -> None:
        self.closed = True


class FakeActivations:
    def __init__(self) -> None:
        self.built: list[Activation] = []

    async def __call__(self, session: AgentSession) -> Activation:
        listener = QueueListener()
        backend = EchoBackend()
        synthesis = SilentSynthesis()
        agent = VoiceAgent(
            listener=listener,
            backend=backend,
            synthesis=synthesis,  # type: ignore[arg-type]
            router=ActionRouter(log=session.log),
            log=session.log,
            states=session.states,
            notifications=session.notifications,
            shutdown_phrases=session.config.shutdown_phrases,
            clock=lambda: datetime(2026, 3, 2, 14, 0),
            post_turn_pause_s=0,
            idle_pause_s=0,
        )
        activation = Activation(
            agent=agent,
            synthesis=synthesis,  # type: ignore[arg-type]
            backend=backend,
            listener=listener,
        )
        self.built.append(activation)
        return activation


async def wait_for_state(session: AgentSession, state: AgentState) -> None:
    for _ in range(400):
        if session.state == state:
            return
        await asyncio.sleep(0.005)
    raise AssertionError(f"session never reached {state}")


def test_start_stop_lifecycle_releases_adapters() -> None:
    factory = FakeActivations()

    async def scenario() -> tuple[bool, bool, bool, bool]:
        session = AgentSession(make_config(), activation_factory=factory)
        assert session.state == AgentState.INACTIVE

        first = await session.start()
        second = await session.start()
        await wait_for_state(session, AgentState.LISTENING)

        stopped = await session.stop()
        stopped_again = await session.stop()
        return first, second, stopped, stopped_again

    first, second, stopped, stopped_again = asyncio.run(scenario())

    assert (first, second, stopped, stopped_again) == (True, False, True, False)
    assert len(factory.built) == 1
    activation = factory.built[0]
    assert activation.synthesis.closed  # type: ignore[attr-defined]
    assert activation.backend.closed  # type: ignore[attr-defined]
    assert activation.listener.closed  # type: ignore[attr-defined]


def test_log_and_state_feeds_survive_restarts() -> None:
    factory = FakeActivations()

    async def scenario() -> tuple[list[str], AgentState]:
        session = AgentSession(make_config(), activation_factory=factory)
        states = session.states.subscribe()

        for _ in range(2):
            await session.start()
            await wait_for_state(session, AgentState.LISTENING)
            await session.stop()

        seen = [states.get_nowait().value for _ in range(states.pending())]
        return seen, session.state

    seen, final_state = asyncio.run(scenario())

    assert seen.count("GREETING") == 2
    assert seen[-1] == "INACTIVE"
    assert final_state == AgentState.INACTIVE


def test_typed_input_reaches_the_running_agent() -> None:
    factory = FakeActivations()

    async def scenario() -> tuple[bool, bool, list[str]]:
        session = AgentSession(make_config(), activation_factory=factory)
        rejected = session.submit_text("hello")

        await session.start()
        await wait_for_state(session, AgentState.LISTENING)
        accepted = session.submit_text("hello")
        for _ in range(400):
            if any(e.text == "You said hello" for e in session.log.snapshot()):
                break
            await asyncio.sleep(0.005)
        await session.stop()
        return rejected, accepted, [e.text for e in session.log.snapshot()]

    rejected, accepted, texts = asyncio.run(scenario())

    assert rejected is False
    assert accepted is True
    assert "You said hello" in texts


def test_shutdown_phrase_ends_activation_on_its_own() -> None:
    factory = FakeActivations()

    async def scenario() -> tuple[bool, AgentState]:
        session = AgentSession(make_config(), activation_factory=factory)
        await session.start()
        await wait_for_state(session, AgentState.LISTENING)

        listener = factory.built[0].listener
        assert isinstance(listener, QueueListener)
        listener.transcripts.put_nowait("Jarvis stop")

        for _ in range(400):
            if not session.is_active:
                break
            await asyncio.sleep(0.005)
        return session.is_active, session.state

    active, state = asyncio.run(scenario())

    assert active is False
    assert state == AgentState.INACTIVE
    assert factory.built[0].backend.closed  # type: ignore[attr-defined]
