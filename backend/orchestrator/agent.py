"""
Turn orchestrator (the agent loop).

Responsibilities:
- Own the AgentState and change it only through _transition()
- Sequence greet -> listen -> think -> (execute) -> speak -> listen ...
- Merge spoken transcripts and typed text into one input path
- Interleave proactive notification announcements while idle
- Absorb every collaborator failure; nothing escapes run()

Non-responsibilities:
- No audio capture, recognition or synthesis details (adapters)
- No tier fallback (orchestrator.synthesis)
- No directive parsing rules (orchestrator.directives)
- No construction of collaborators (session.agent_session)

Concurrency:
- run() is the only writer of state, history and the conversation log
- stop(), pause(), resume() and submit_text() are safe to call from other
  tasks on the same event loop; they only flip events and enqueue input
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Final, Iterable, TypeVar

from adapters.asr.base import ListenHints, SpeechListener
from adapters.llm.base import ChatResult, ReasoningBackend
from adapters.llm.prompts import SYSTEM_PROMPT_V1
from context.conversation import ConversationHistory
from context.conversation_log import Broadcast, ConversationLog
from context.serialization import RequestContext, build_messages
from observability.logger import log_event
from orchestrator.actions import ActionRouter
from orchestrator.directives import strip_directive, try_parse
from orchestrator.enums.state import AgentState
from orchestrator.phrases import greeting_key, phrase
from orchestrator.synthesis import SynthesisOrchestrator
from services.protocols import Browser, DeviceInfo, NotificationSource, UIAutomation
from spec import (
    APOLOGY_ERROR_MAX_CHARS,
    DEFAULT_SHUTDOWN_PHRASES,
    IDLE_RELISTEN_PAUSE_MS,
    LLM_REQUEST_TIMEOUT_S,
    LOW_BATTERY_WARN_PERCENT,
    NOTIFICATION_ANNOUNCE_COUNT,
    NOTIFICATION_CONTEXT_COUNT,
    POST_TURN_PAUSE_MS,
    TEXT_INPUT_QUEUE_MAX,
)


T = TypeVar("T")


# ---------------------------------------------------------------------
# Allowed transitions
# ---------------------------------------------------------------------

_ALLOWED: Final[dict[AgentState, frozenset[AgentState]]] = {
    AgentState.INACTIVE: frozenset({AgentState.GREETING}),
    AgentState.GREETING: frozenset({
        AgentState.LISTENING, AgentState.SPEAKING, AgentState.PAUSED, AgentState.INACTIVE,
    }),
    AgentState.LISTENING: frozenset({
        AgentState.THINKING, AgentState.SPEAKING, AgentState.PAUSED, AgentState.INACTIVE,
    }),
    AgentState.THINKING: frozenset({
        AgentState.EXECUTING, AgentState.SPEAKING, AgentState.LISTENING,
        AgentState.PAUSED, AgentState.INACTIVE,
    }),
    AgentState.EXECUTING: frozenset({
        AgentState.SPEAKING, AgentState.LISTENING, AgentState.PAUSED, AgentState.INACTIVE,
    }),
    AgentState.SPEAKING: frozenset({
        AgentState.LISTENING, AgentState.PAUSED, AgentState.INACTIVE,
    }),
    AgentState.PAUSED: frozenset({AgentState.LISTENING, AgentState.INACTIVE}),
}


def _first_line(text: str) -> str:
    stripped = text.strip()
    return stripped.splitlines()[0] if stripped else ""


class VoiceAgent:
    """
    One activation of the voice agent.

    Public surface:
    - run():          drive the loop until stop() or a shutdown phrase
    - stop():         end the loop; unblocks any pending wait
    - pause()/resume()
    - submit_text():  typed input, same path as a spoken transcript
    - state / states: current state and its broadcast feed
    """

    def __init__(
        self,
        *,
        listener: SpeechListener,
        backend: ReasoningBackend,
        synthesis: SynthesisOrchestrator,
        router: ActionRouter,
        log: ConversationLog,
        states: Broadcast[AgentState] | None = None,
        history: ConversationHistory | None = None,
        notifications: NotificationSource | None = None,
        device: DeviceInfo | None = None,
        ui: UIAutomation | None = None,
        browser: Browser | None = None,
        system_prompt: str = SYSTEM_PROMPT_V1,
        language: str = "en",
        agent_name: str = "Jarvis",
        shutdown_phrases: Iterable[str] = DEFAULT_SHUTDOWN_PHRASES,
        clock: Callable[[], datetime] = datetime.now,
        post_turn_pause_s: float = POST_TURN_PAUSE_MS / 1000,
        idle_pause_s: float = IDLE_RELISTEN_PAUSE_MS / 1000,
        backend_timeout_s: float = LLM_REQUEST_TIMEOUT_S,
    ) -> None:
        self._listener = listener
        self._backend = backend
        self._synthesis = synthesis
        self._router = router
        self._log = log
        self._history = history if history is not None else ConversationHistory()
        self._notifications = notifications
        self._device = device
        self._ui = ui
        self._browser = browser

        self._system_prompt = system_prompt
        self._language = language
        self._agent_name = agent_name
        self._sender = agent_name.upper()
        self._shutdown_phrases = tuple(p.lower() for p in shutdown_phrases if p.strip())
        self._clock = clock
        self._post_turn_pause_s = post_turn_pause_s
        self._idle_pause_s = idle_pause_s
        self._backend_timeout_s = backend_timeout_s

        self._state = AgentState.INACTIVE
        self.states: Broadcast[AgentState] = (
            states if states is not None else Broadcast("agent_state", replay=1)
        )
        if self.states.latest != self._state:
            self.states.publish(self._state)

        self._text_queue: asyncio.Queue[str] = asyncio.Queue(maxsize=TEXT_INPUT_QUEUE_MAX)
        self._stashed_transcript: str | None = None
        self._last_announced_ts = 0

        self._running = False
        self._keep_running = False
        self._stopped = asyncio.Event()
        self._interrupt = asyncio.Event()
        self._unpaused = asyncio.Event()
        self._unpaused.set()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return not self._unpaused.is_set()

    @property
    def history(self) -> ConversationHistory:
        return self._history

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Drive the loop. Refuses to start while already running."""
        if self._running:
            log_event({"event_type": "agent_run_rejected", "reason": "already_running"})
            return

        self._running = True
        self._keep_running = True
        self._stopped.clear()
        log_event({"event_type": "agent_started", "language": self._language})

        try:
            await self._greet()
            while self._keep_running:
                try:
                    if await self._iteration():
                        break
                except asyncio.CancelledError:
                    raise
                except Exception as e:  # pylint: disable=broad-exception-caught
                    log_event({
                        "event_type": "agent_turn_error",
                        "level": "ERROR",
                        "exception": type(e).__name__,
                        "message": str(e),
                    })
                    await self._sleep(self._idle_pause_s)
        finally:
            self._keep_running = False
            self._running = False
            if self._state != AgentState.INACTIVE:
                self._transition(AgentState.INACTIVE)
            log_event({"event_type": "agent_stopped"})

    def stop(self) -> None:
        """End the loop. Idempotent; safe while paused, listening or speaking."""
        self._keep_running = False
        self._stopped.set()
        self._interrupt.set()
        self._unpaused.set()
        self._synthesis.cancel()

    def pause(self) -> bool:
        if not self._running or self.is_paused:
            return False
        self._unpaused.clear()
        self._interrupt.set()
        self._synthesis.cancel()
        log_event({"event_type": "agent_pause_requested"})
        return True

    def resume(self) -> bool:
        if not self.is_paused:
            return False
        self._unpaused.set()
        log_event({"event_type": "agent_resume_requested"})
        return True

    def submit_text(self, text: str) -> bool:
        """Queue typed input. Returns False for blank text or a full queue."""
        if not text or not text.strip():
            return False
        try:
            self._text_queue.put_nowait(text.strip())
        except asyncio.QueueFull:
            log_event({
                "event_type": "text_input_dropped",
                "level": "WARNING",
                "queue_max": TEXT_INPUT_QUEUE_MAX,
            })
            return False
        return True

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _transition(self, to_state: AgentState) -> bool:
        from_state = self._state
        if to_state == from_state:
            return True
        if to_state not in _ALLOWED[from_state]:
            log_event({
                "event_type": "agent_state",
                "decision": "transition_rejected",
                "from_state": from_state.value,
                "to_state": to_state.value,
            })
            return False

        self._state = to_state
        log_event({
            "event_type": "agent_state",
            "decision": "state_changed",
            "from_state": from_state.value,
            "to_state": to_state.value,
        })
        self.states.publish(to_state)
        return True

    # ------------------------------------------------------------------
    # Loop body
    # ------------------------------------------------------------------

    async def _iteration(self) -> bool:
        """One listen/think/speak cycle. Returns True when the loop must end."""
        if self.is_paused:
            self._transition(AgentState.PAUSED)
            await self._unpaused.wait()
            return not self._keep_running

        self._interrupt.clear()
        self._transition(AgentState.LISTENING)

        source, text = await self._next_input()
        if source is None or not self._keep_running:
            return not self._keep_running

        if not text.strip():
            await self._announce_new_notifications()
            await self._sleep(self._idle_pause_s)
            return False

        if await self._handle_input(text, typed=source == "typed"):
            return True

        if self._keep_running and not self.is_paused:
            self._transition(AgentState.LISTENING)
            await self._sleep(self._post_turn_pause_s)
        return False

    async def _next_input(self) -> tuple[str | None, str]:
        """
        Wait for the next transcript or typed text.

        Returns (source, text) with source "voice" or "typed", or (None, "")
        when interrupted by stop()/pause(). Typed text wins a tie; the
        transcript is kept for the next call.
        """
        if self._stashed_transcript is not None:
            heard, self._stashed_transcript = self._stashed_transcript, None
            return "voice", heard
        if not self._text_queue.empty():
            return "typed", self._text_queue.get_nowait()

        listen_task = asyncio.create_task(self._safe_listen())
        typed_task = asyncio.create_task(self._text_queue.get())
        interrupt_task = asyncio.create_task(self._interrupt.wait())
        tasks = (listen_task, typed_task, interrupt_task)

        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        typed = typed_task.result() if typed_task.done() and not typed_task.cancelled() else None
        heard = listen_task.result() if listen_task.done() and not listen_task.cancelled() else None

        if typed is not None:
            if heard and heard.strip():
                self._stashed_transcript = heard
            return "typed", typed
        if heard is not None:
            return "voice", heard
        return None, ""

    async def _handle_input(self, text: str, *, typed: bool) -> bool:
        """Run one turn for a non-empty input. Returns True on shutdown."""
        self._log.emit("YOU (typed)" if typed else "YOU", text)
        self._history.add_user(text)

        if self._is_shutdown(text):
            goodbye = phrase(self._language, "goodbye")
            self._log.emit(self._sender, goodbye)
            self._transition(AgentState.SPEAKING)
            await self._synthesis.speak(goodbye)
            log_event({"event_type": "agent_shutdown_phrase"})
            self._keep_running = False
            self._transition(AgentState.INACTIVE)
            return True

        self._transition(AgentState.THINKING)
        reply = await self._think()
        if reply is None:
            return False

        self._log.emit(self._sender, reply)
        if self.is_paused:
            # Paused while the backend was still answering: keep the reply in
            # the log, stay silent.
            log_event({
                "event_type": "agent_reply_muted",
                "reason": "paused",
                "chars": len(reply),
            })
            return False

        self._transition(AgentState.SPEAKING)
        await self._synthesis.speak(reply)
        return False

    async def _think(self) -> str | None:
        """
        Ask the backend and turn its answer into the text to speak.

        Returns None only when stop() interrupted the call.
        """
        messages = build_messages(
            system_prompt=self._system_prompt,
            context=self._gather_context(),
            history=self._history,
        )

        finished, result = await self._until_stopped(self._chat(messages))
        if not finished:
            return None
        assert result is not None

        if not result.ok:
            if result.not_configured:
                return phrase(self._language, "not_configured")
            error = _first_line(result.error or "")[:APOLOGY_ERROR_MAX_CHARS]
            return phrase(self._language, "apology", error=error)

        text = result.text or ""
        self._history.add_assistant(text)

        spoken = text
        narration: list[str] = []
        parsed = try_parse(text)
        if parsed is not None:
            self._transition(AgentState.EXECUTING)
            outcome = self._router.dispatch(parsed.directive)
            spoken = strip_directive(text, parsed)
            if outcome is not None and outcome.narrate:
                narration.append(outcome.message)

        combined = " ".join(part.strip() for part in (spoken, *narration) if part.strip())
        return combined or phrase(self._language, "filler")

    async def _chat(self, messages: list[dict[str, str]]) -> ChatResult:
        try:
            return await asyncio.wait_for(self._backend.chat(messages), timeout=self._backend_timeout_s)
        except asyncio.TimeoutError:
            log_event({"event_type": "llm_timeout", "level": "WARNING", "timeout_s": self._backend_timeout_s})
            return ChatResult.failure("request timed out")
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "llm_backend_raised",
                "level": "WARNING",
                "exception": type(e).__name__,
                "message": str(e),
            })
            return ChatResult.failure(_first_line(str(e)) or type(e).__name__)

    # ------------------------------------------------------------------
    # Greeting + announcements
    # ------------------------------------------------------------------

    async def _greet(self) -> None:
        self._transition(AgentState.GREETING)

        parts = [
            phrase(self._language, greeting_key(self._clock().hour)),
            phrase(self._language, "greeting_intro", name=self._agent_name),
        ]
        battery = self._call_collaborator("battery", self._device.battery) if self._device else None
        if (
            battery is not None
            and 0 < battery.percentage <= LOW_BATTERY_WARN_PERCENT
            and not battery.is_charging
        ):
            parts.append(phrase(self._language, "low_battery", percent=battery.percentage))

        greeting = " ".join(parts)
        self._log.emit(self._sender, greeting)
        await self._synthesis.speak(greeting)
        await self._announce_new_notifications()

    async def _announce_new_notifications(self) -> None:
        if self._notifications is None:
            return
        recent = self._call_collaborator(
            "notifications", self._notifications.recent, NOTIFICATION_ANNOUNCE_COUNT
        ) or []

        for item in recent:
            if item.timestamp <= self._last_announced_ts:
                continue
            if not self._keep_running or self.is_paused:
                return
            text = phrase(
                self._language, "notification",
                app=item.app, sender=item.sender, text=item.text,
            )
            self._log.emit(self._sender, text)
            self._transition(AgentState.SPEAKING)
            await self._synthesis.speak(text)
            self._last_announced_ts = item.timestamp

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_shutdown(self, text: str) -> bool:
        lowered = text.lower()
        return any(p in lowered for p in self._shutdown_phrases)

    async def _safe_listen(self) -> str:
        try:
            return await self._listener.listen(ListenHints(language=self._language))
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "listener_error",
                "level": "WARNING",
                "exception": type(e).__name__,
                "message": str(e),
            })
            return ""

    def _gather_context(self) -> RequestContext:
        screen = self._call_collaborator("screen", self._ui.snapshot) if self._ui else None
        page = self._call_collaborator("web_page", lambda: self._browser.last_page) if self._browser else None
        recent = (
            self._call_collaborator("notifications", self._notifications.recent, NOTIFICATION_CONTEXT_COUNT)
            if self._notifications else None
        )
        summary = self._call_collaborator("device", self._device.summary) if self._device else None

        return RequestContext(
            screen_text=screen.to_context_string() if screen is not None else None,
            web_page=page.to_context_string() if page is not None else None,
            notifications=tuple(n.to_context_string() for n in recent or ()),
            device_summary=summary or None,
        )

    @staticmethod
    def _call_collaborator(name: str, fn: Callable[..., T], *args: Any) -> T | None:
        try:
            return fn(*args)
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "collaborator_error",
                "level": "WARNING",
                "collaborator": name,
                "exception": type(e).__name__,
                "message": str(e),
            })
            return None

    async def _until_stopped(self, coro: Awaitable[T]) -> tuple[bool, T | None]:
        """Await coro unless stop() comes first. Returns (finished, result)."""
        work = asyncio.ensure_future(coro)
        stopper = asyncio.create_task(self._stopped.wait())
        try:
            await asyncio.wait({work, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (work, stopper):
                if not task.done():
                    task.cancel()
            await asyncio.gather(work, stopper, return_exceptions=True)

        if work.done() and not work.cancelled():
            return True, work.result()
        return False, None

    async def _sleep(self, seconds: float) -> None:
        """Sleep, but wake early on stop()."""
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
