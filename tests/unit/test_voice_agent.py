# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from datetime import datetime
from typing import Any, Callable

import pytest

import orchestrator.agent as agent_mod
from adapters.asr.base import ListenHints, SpeechListener
from adapters.llm.base import ChatResult, ReasoningBackend
from context.conversation_log import ConversationLog
from orchestrator.actions import ActionRouter
from orchestrator.agent import VoiceAgent
from orchestrator.enums.state import AgentState
from services.notifications import Notification, NotificationFeed
from services.protocols import BatteryInfo, NetworkInfo


class ScriptedListener(SpeechListener):
    """Returns scripted transcripts, then blocks like a quiet room."""

    def __init__(self, transcripts: list[str] | None = None) -> None:
        self._transcripts = list(transcripts or [])
        self.calls = 0

    async def listen(self, hints: ListenHints) -> str:
        self.calls += 1
        await asyncio.sleep(0)
        if self._transcripts:
            return self._transcripts.pop(0)
        await asyncio.Event().wait()
        return ""


class ScriptedBackend(ReasoningBackend):
    def __init__(self, replies: list[ChatResult | Exception] | None = None) -> None:
        self._replies = list(replies or [])
        self.requests: list[list[dict[str, str]]] = []

    async def chat(self, messages: list[dict[str, str]]) -> ChatResult:
        self.requests.append(messages)
        reply = self._replies.pop(0) if self._replies else ChatResult.success("Okay boss.")
        if isinstance(reply, Exception):
            raise reply
        return reply


class GatedBackend(ScriptedBackend):
    """Holds every chat() until release is set."""

    def __init__(self, reply: str) -> None:
        super().__init__([ChatResult.success(reply)])
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def chat(self, messages: list[dict[str, str]]) -> ChatResult:
        self.entered.set()
        await self.release.wait()
        return await super().chat(messages)


class RecordingSynthesis:
    def __init__(self) -> None:
        self.spoken: list[str] = []
        self.cancel_calls = 0

    async def speak(self, text: str, language: str | None = None) -> None:
        self.spoken.append(text)

    def cancel(self) -> None:
        self.cancel_calls += 1


class FakeDevice:
    def __init__(self, percentage: int = 80, charging: bool = False) -> None:
        self._battery = BatteryInfo(percentage=percentage, is_charging=charging)

    def battery(self) -> BatteryInfo:
        return self._battery

    def network(self) -> NetworkInfo:
        return NetworkInfo(type="wifi", is_connected=True)

    def summary(self) -> str:
        return f"Battery: {self._battery.percentage}%"


class Rig:
    def __init__(
        self,
        transcripts: list[str] | None = None,
        replies: list[ChatResult | Exception] | None = None,
        *,
        device: FakeDevice | None = None,
        notifications: NotificationFeed | None = None,
        hour: int = 9,
        backend: ScriptedBackend | None = None,
    ) -> None:
        self.listener = ScriptedListener(transcripts)
        self.backend = backend or ScriptedBackend(replies)
        self.synthesis = RecordingSynthesis()
        self.log = ConversationLog()
        self.device = device or FakeDevice()
        self.agent = VoiceAgent(
            listener=self.listener,
            backend=self.backend,
            synthesis=self.synthesis,  # type: ignore[arg-type]
            router=ActionRouter(log=self.log, device=self.device),
            log=self.log,
            notifications=notifications,
            device=self.device,
            clock=lambda: datetime(2026, 3, 2, hour, 0),
            post_turn_pause_s=0,
            idle_pause_s=0,
        )

    def entries(self) -> list[tuple[str, str]]:
        return [(e.sender, e.text) for e in self.log.snapshot()]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


@pytest.fixture(name="emitted")
def fixture_emitted(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    events: list[dict[str, Any]] = []
    monkeypatch.setattr(agent_mod, "log_event", events.append)
    return events


def _state_changes(emitted: list[dict[str, Any]]) -> list[str]:
    return [
        e["to_state"] for e in emitted
        if e.get("event_type") == "agent_state" and e.get("decision") == "state_changed"
    ]


async def _stop(rig: Rig, task: "asyncio.Task[None]") -> None:
    rig.agent.stop()
    await asyncio.wait_for(task, timeout=2)


# ---------------------------------------------------------------------
# Shutdown and liveness
# ---------------------------------------------------------------------

def test_shutdown_phrase_ends_loop_once(emitted: list[dict[str, Any]]) -> None:
    rig = Rig(["Okay JARVIS STOP now"])

    asyncio.run(asyncio.wait_for(rig.agent.run(), timeout=2))

    changes = _state_changes(emitted)
    assert changes.count("INACTIVE") == 1
    assert changes[-1] == "INACTIVE"
    assert "LISTENING" not in changes[changes.index("INACTIVE"):]
    assert rig.synthesis.spoken[-1] == "Okay boss, shutting down. Call me when you need me!"
    assert rig.backend.requests == []
    assert rig.agent.state == AgentState.INACTIVE
    assert rig.agent.states.latest == AgentState.INACTIVE


def test_loop_keeps_running_without_shutdown_phrase(emitted: list[dict[str, Any]]) -> None:
    rig = Rig(["hello", "how are you", "tell me a joke"])

    async def scenario() -> bool:
        task = asyncio.create_task(rig.agent.run())
        await wait_until(lambda: len(rig.backend.requests) == 3 and rig.listener.calls >= 4)
        await asyncio.sleep(0.05)
        still_running = not task.done()
        await _stop(rig, task)
        return still_running

    assert asyncio.run(scenario()) is True
    assert rig.agent.state == AgentState.INACTIVE
    assert rig.synthesis.spoken.count("Okay boss.") == 3
    assert _state_changes(emitted).count("INACTIVE") == 1


def test_run_refuses_to_start_twice(emitted: list[dict[str, Any]]) -> None:
    rig = Rig()

    async def scenario() -> None:
        task = asyncio.create_task(rig.agent.run())
        await wait_until(lambda: rig.agent.state == AgentState.LISTENING)
        await asyncio.wait_for(rig.agent.run(), timeout=1)
        await _stop(rig, task)

    asyncio.run(scenario())

    assert any(e["event_type"] == "agent_run_rejected" for e in emitted)


# ---------------------------------------------------------------------
# Turn handling
# ---------------------------------------------------------------------

def test_backend_error_is_spoken_as_short_apology(emitted: list[dict[str, Any]]) -> None:
    error = 'connection timed out\nTraceback (most recent call last):\n  File "client.py", line 12'
    rig = Rig(["what's the weather"], [ChatResult.failure(error)])

    async def scenario() -> None:
        task = asyncio.create_task(rig.agent.run())
        await wait_until(lambda: len(rig.synthesis.spoken) == 2)
        await _stop(rig, task)

    asyncio.run(scenario())

    apology = rig.synthesis.spoken[1]
    assert apology == "Boss, I ran into a problem: connection timed out"
    assert "Traceback" not in apology
    assert emitted


def test_backend_exception_is_absorbed(emitted: list[dict[str, Any]]) -> None:
    rig = Rig(["hello", "hello again"], [RuntimeError("socket closed"), ChatResult.success("Hi boss!")])

    async def scenario() -> None:
        task = asyncio.create_task(rig.agent.run())
        await wait_until(lambda: "Hi boss!" in rig.synthesis.spoken)
        await _stop(rig, task)

    asyncio.run(scenario())

    assert "Boss, I ran into a problem: socket closed" in rig.synthesis.spoken
    assert any(e["event_type"] == "llm_backend_raised" for e in emitted)


def test_missing_backend_credentials_are_announced(emitted: list[dict[str, Any]]) -> None:
    rig = Rig(["hello"], [ChatResult.failure("backend not configured", not_configured=True)])

    async def scenario() -> None:
        task = asyncio.create_task(rig.agent.run())
        await wait_until(lambda: len(rig.synthesis.spoken) == 2)
        await _stop(rig, task)

    asyncio.run(scenario())

    assert rig.synthesis.spoken[1].startswith("Boss, the AI provider is not set up.")
    assert emitted


def test_battery_directive_is_executed_and_narrated(emitted: list[dict[str, Any]]) -> None:
    reply = 'Let me check. {"action": "device_info", "type": "battery"}'
    rig = Rig(["what's my battery"], [ChatResult.success(reply)], device=FakeDevice(percentage=15))

    async def scenario() -> None:
        task = asyncio.create_task(rig.agent.run())
        await wait_until(lambda: len(rig.synthesis.spoken) == 2)
        await _stop(rig, task)

    asyncio.run(scenario())

    spoken = rig.synthesis.spoken[1]
    assert spoken == "Let me check. Battery is at 15%, not charging."
    assert "{" not in spoken and "action" not in spoken
    assert "EXECUTING" in _state_changes(emitted)
    # The raw reply (with its directive) is what the history keeps.
    assert rig.agent.history.turns[-1].content == reply


def test_directive_only_reply_speaks_only_the_outcome(emitted: list[dict[str, Any]]) -> None:
    rig = Rig(["scroll down"], [ChatResult.success('{"action": "scroll", "direction": "down"}')])

    async def scenario() -> None:
        task = asyncio.create_task(rig.agent.run())
        await wait_until(lambda: len(rig.synthesis.spoken) == 2)
        await _stop(rig, task)

    asyncio.run(scenario())

    # No screen control is wired, so the narrated failure is the whole reply.
    assert rig.synthesis.spoken[1] == "Screen control is not available on this device, boss."
    assert emitted


def test_silent_directive_reply_falls_back_to_filler(emitted: list[dict[str, Any]]) -> None:
    rig = Rig(["say something"], [ChatResult.success('```json\n{"action": "speak"}\n```')])

    async def scenario() -> None:
        task = asyncio.create_task(rig.agent.run())
        await wait_until(lambda: len(rig.synthesis.spoken) == 2)
        await _stop(rig, task)

    asyncio.run(scenario())

    assert rig.synthesis.spoken[1] == "On it, boss!"
    assert emitted


def test_typed_input_takes_the_voice_path(emitted: list[dict[str, Any]]) -> None:
    rig = Rig()

    async def scenario() -> bool:
        task = asyncio.create_task(rig.agent.run())
        await wait_until(lambda: rig.agent.state == AgentState.LISTENING)
        accepted = rig.agent.submit_text("  what time is it  ")
        await wait_until(lambda: len(rig.synthesis.spoken) == 2)
        await _stop(rig, task)
        return accepted

    assert asyncio.run(scenario()) is True
    assert ("YOU (typed)", "what time is it") in rig.entries()
    assert rig.backend.requests[0][-1] == {"role": "user", "content": "what time is it"}
    assert emitted


def test_blank_typed_input_is_rejected() -> None:
    rig = Rig()

    assert rig.agent.submit_text("   ") is False


def test_backend_request_carries_system_prompt_and_device_context(
    emitted: list[dict[str, Any]],
) -> None:
    rig = Rig(["hello"])

    async def scenario() -> None:
        task = asyncio.create_task(rig.agent.run())
        await wait_until(lambda: len(rig.backend.requests) == 1)
        await _stop(rig, task)

    asyncio.run(scenario())

    messages = rig.backend.requests[0]
    assert messages[0]["role"] == "system"
    assert any(m["content"].startswith("[DEVICE INFO]") for m in messages)
    assert messages[-1] == {"role": "user", "content": "hello"}
    assert emitted


# ---------------------------------------------------------------------
# Greeting, notifications, pause
# ---------------------------------------------------------------------

def test_greeting_warns_about_low_battery(emitted: list[dict[str, Any]]) -> None:
    rig = Rig(["jarvis stop"], device=FakeDevice(percentage=12, charging=False), hour=9)

    asyncio.run(asyncio.wait_for(rig.agent.run(), timeout=2))

    greeting = rig.synthesis.spoken[0]
    assert greeting.startswith("Good morning, boss! I am Jarvis")
    assert "battery is at 12%" in greeting
    assert _state_changes(emitted)[0] == "GREETING"


def test_greeting_skips_warning_while_charging(emitted: list[dict[str, Any]]) -> None:
    rig = Rig(["jarvis stop"], device=FakeDevice(percentage=12, charging=True), hour=22)

    asyncio.run(asyncio.wait_for(rig.agent.run(), timeout=2))

    greeting = rig.synthesis.spoken[0]
    assert greeting.startswith("Still awake, boss?")
    assert "battery" not in greeting
    assert emitted


def test_new_notifications_are_announced_once(emitted: list[dict[str, Any]]) -> None:
    feed = NotificationFeed()
    feed.push(Notification(app="WhatsApp", sender="Mom", text="call me", timestamp=1_000))
    rig = Rig(["", "", "jarvis stop"], notifications=feed)

    asyncio.run(asyncio.wait_for(rig.agent.run(), timeout=2))

    announcement = "Boss, message from WhatsApp. Mom says: call me"
    assert rig.synthesis.spoken.count(announcement) == 1
    assert emitted


def test_pause_and_resume(emitted: list[dict[str, Any]]) -> None:
    rig = Rig()

    async def scenario() -> tuple[bool, bool, bool]:
        task = asyncio.create_task(rig.agent.run())
        await wait_until(lambda: rig.agent.state == AgentState.LISTENING)

        paused = rig.agent.pause()
        await wait_until(lambda: rig.agent.state == AgentState.PAUSED)
        paused_twice = rig.agent.pause()

        resumed = rig.agent.resume()
        await wait_until(lambda: rig.agent.state == AgentState.LISTENING)
        await _stop(rig, task)
        return paused, paused_twice, resumed

    paused, paused_twice, resumed = asyncio.run(scenario())

    assert paused is True
    assert paused_twice is False
    assert resumed is True
    assert rig.synthesis.cancel_calls >= 1
    assert _state_changes(emitted)[-1] == "INACTIVE"


def test_stop_while_paused_ends_the_loop(emitted: list[dict[str, Any]]) -> None:
    rig = Rig()

    async def scenario() -> None:
        task = asyncio.create_task(rig.agent.run())
        await wait_until(lambda: rig.agent.state == AgentState.LISTENING)
        rig.agent.pause()
        await wait_until(lambda: rig.agent.state == AgentState.PAUSED)
        await _stop(rig, task)

    asyncio.run(scenario())

    assert rig.agent.state == AgentState.INACTIVE
    assert emitted


def test_pause_while_thinking_keeps_the_reply_silent(emitted: list[dict[str, Any]]) -> None:
    backend = GatedBackend("Once upon a time there was a robot.")
    rig = Rig(["tell me a story"], backend=backend)

    async def scenario() -> None:
        task = asyncio.create_task(rig.agent.run())
        await asyncio.wait_for(backend.entered.wait(), timeout=2)
        assert rig.agent.state == AgentState.THINKING

        assert rig.agent.pause() is True
        backend.release.set()
        await wait_until(lambda: rig.agent.state == AgentState.PAUSED)
        await _stop(rig, task)

    asyncio.run(scenario())

    assert "Once upon a time there was a robot." not in rig.synthesis.spoken
    assert ("JARVIS", "Once upon a time there was a robot.") in rig.entries()
    assert any(e["event_type"] == "agent_reply_muted" for e in emitted)
    assert "SPEAKING" not in _state_changes(emitted)[_state_changes(emitted).index("THINKING"):]
