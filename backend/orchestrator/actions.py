"""
Action router.

Responsibilities:
- Map a parsed ActionDirective to exactly one collaborator call
- Emit a human-readable confirmation for every outcome to the conversation log
- Turn collaborator failures (False, exception, missing collaborator) into
  a spoken apology

Non-responsibilities:
- No directive parsing (see orchestrator.directives)
- No speech; the agent decides what to speak from the returned outcome
- No agent state transitions
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from context.conversation_log import ConversationLog
from observability.logger import log_event
from orchestrator.directives import ActionDirective
from orchestrator.phrases import phrase
from services.protocols import AppLauncher, Browser, DeviceInfo, UIAutomation
from spec import APOLOGY_ERROR_MAX_CHARS, READ_MESSAGES_DEFAULT_COUNT, READ_SCREEN_LOG_MAX_CHARS


_SCROLL_DIRECTIONS = ("up", "down")
_NAVIGATE_TARGETS = ("back", "home", "recents", "notifications")


@dataclass(frozen=True)
class ActionOutcome:
    """
    Result of one dispatched directive.

    narrate=True means the message must also be spoken after the reply.
    """
    success: bool
    message: str
    narrate: bool = False


class _Unavailable(Exception):
    """Raised by a handler when its collaborator is not wired."""


class _MissingParameter(Exception):
    """Raised by a handler when a required parameter is absent or blank."""


Handler = Callable[[ActionDirective], "ActionOutcome | None"]


class ActionRouter:
    """
    Dispatches directives to collaborators.

    Every collaborator is optional; a missing one yields a spoken
    "not available" outcome instead of an error.
    """

    def __init__(
        self,
        *,
        log: ConversationLog,
        ui: UIAutomation | None = None,
        browser: Browser | None = None,
        device: DeviceInfo | None = None,
        launcher: AppLauncher | None = None,
        language: str = "en",
        sender: str = "JARVIS",
    ) -> None:
        self._log = log
        self._ui = ui
        self._browser = browser
        self._device = device
        self._launcher = launcher
        self._language = language
        self._sender = sender

        self._handlers: dict[str, Handler] = {
            "read_screen": self._read_screen,
            "read_messages": self._read_messages,
            "send_message": self._send_message,
            "click": self._click,
            "type": self._type,
            "scroll": self._scroll,
            "navigate": self._navigate,
            "web_search": self._web_search,
            "open_url": self._open_url,
            "device_info": self._device_info,
            "open_app": self._open_app,
            "speak": self._speak,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def dispatch(self, directive: ActionDirective) -> ActionOutcome | None:
        """
        Run the directive.

        Returns None for unknown types and for "speak" (nothing to report).
        Never raises.
        """
        action = directive.type.strip().lower()
        handler = self._handlers.get(action)
        if handler is None:
            log_event({
                "event_type": "action_unknown",
                "action": directive.type,
            })
            return None

        try:
            outcome = handler(directive)
        except _Unavailable as e:
            outcome = ActionOutcome(False, self._say("unavailable", capability=str(e)), narrate=True)
        except _MissingParameter as e:
            outcome = ActionOutcome(False, self._say("missing_parameter", name=str(e)), narrate=True)
        except Exception as e:  # pylint: disable=broad-exception-caught
            detail = (str(e).strip().splitlines() or [type(e).__name__])[0]
            outcome = ActionOutcome(
                False,
                self._say("action_failed", error=detail[:APOLOGY_ERROR_MAX_CHARS]),
                narrate=True,
            )
            log_event({
                "event_type": "action_collaborator_error",
                "level": "WARNING",
                "action": action,
                "exception": type(e).__name__,
                "message": str(e),
            })

        if outcome is None:
            return None

        self._log.emit(self._sender, outcome.message)
        log_event({
            "event_type": "action_dispatched",
            "action": action,
            "success": outcome.success,
            "narrate": outcome.narrate,
        })
        return outcome

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _say(self, key: str, **values: object) -> str:
        return phrase(self._language, key, **values)

    def _require_ui(self) -> UIAutomation:
        if self._ui is None:
            raise _Unavailable("Screen control")
        return self._ui

    def _require_browser(self) -> Browser:
        if self._browser is None:
            raise _Unavailable("The browser")
        return self._browser

    def _require_device(self) -> DeviceInfo:
        if self._device is None:
            raise _Unavailable("Device info")
        return self._device

    def _require_launcher(self) -> AppLauncher:
        if self._launcher is None:
            raise _Unavailable("App launching")
        return self._launcher

    @staticmethod
    def _param(directive: ActionDirective, name: str) -> str:
        value = directive.param(name).strip()
        if not value:
            raise _MissingParameter(name)
        return value

    @staticmethod
    def _count(directive: ActionDirective) -> int:
        raw = directive.param("count")
        try:
            count = int(float(raw))
        except (ValueError, OverflowError):
            return READ_MESSAGES_DEFAULT_COUNT
        return count if count > 0 else READ_MESSAGES_DEFAULT_COUNT

    def _result(self, ok: bool, ok_key: str, fail_key: str, **values: object) -> ActionOutcome:
        if ok:
            return ActionOutcome(True, self._say(ok_key, **values))
        return ActionOutcome(False, self._say(fail_key, **values), narrate=True)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _read_screen(self, _directive: ActionDirective) -> ActionOutcome:
        text = self._require_ui().read_screen_text()
        if not text.strip():
            return ActionOutcome(False, self._say("screen_empty"), narrate=True)
        return ActionOutcome(True, "Screen content:\n" + text[:READ_SCREEN_LOG_MAX_CHARS])

    def _read_messages(self, directive: ActionDirective) -> ActionOutcome:
        messages = self._require_ui().read_last_messages(self._count(directive))
        if not messages:
            return ActionOutcome(True, self._say("messages_none"), narrate=True)
        joined = "; ".join(f"{m.sender}: {m.text}" for m in messages)
        return ActionOutcome(True, self._say("messages_read", messages=joined), narrate=True)

    def _send_message(self, directive: ActionDirective) -> ActionOutcome:
        ui = self._require_ui()
        text = self._param(directive, "text")
        return self._result(ui.send_message(text), "message_sent", "message_failed", text=text)

    def _click(self, directive: ActionDirective) -> ActionOutcome:
        ui = self._require_ui()
        target = self._param(directive, "target")
        return self._result(ui.click_by_label(target), "clicked", "click_failed", target=target)

    def _type(self, directive: ActionDirective) -> ActionOutcome:
        ui = self._require_ui()
        text = self._param(directive, "text")
        return self._result(ui.type_text(text), "typed", "type_failed", text=text)

    def _scroll(self, directive: ActionDirective) -> ActionOutcome:
        ui = self._require_ui()
        direction = directive.param("direction", "down").strip().lower()
        if direction not in _SCROLL_DIRECTIONS:
            direction = "down"
        return self._result(ui.scroll(direction), "scrolled", "scroll_failed", direction=direction)

    def _navigate(self, directive: ActionDirective) -> ActionOutcome:
        ui = self._require_ui()
        target = self._param(directive, "target").lower()
        if target not in _NAVIGATE_TARGETS:
            return ActionOutcome(False, self._say("navigate_failed", target=target), narrate=True)
        return self._result(ui.navigate(target), "navigated", "navigate_failed", target=target)

    def _web_search(self, directive: ActionDirective) -> ActionOutcome:
        browser = self._require_browser()
        query = self._param(directive, "query")
        return self._result(browser.search(query), "searched", "action_failed", query=query, error=query)

    def _open_url(self, directive: ActionDirective) -> ActionOutcome:
        browser = self._require_browser()
        url = self._param(directive, "url")
        return self._result(browser.open_url(url), "opened_url", "action_failed", url=url, error=url)

    def _device_info(self, directive: ActionDirective) -> ActionOutcome:
        device = self._require_device()
        info_type = directive.param("type", "all").strip().lower()

        if info_type == "battery":
            battery = device.battery()
            if battery is None:
                return ActionOutcome(False, self._say("battery_unknown"), narrate=True)
            charging = self._say("battery_charging" if battery.is_charging else "battery_not_charging")
            message = self._say("battery", percent=battery.percentage, charging=charging)
        elif info_type == "network":
            network = device.network()
            status = self._say("network_connected" if network.is_connected else "network_disconnected")
            message = self._say("network", type=network.type, status=status)
        else:
            message = device.summary()

        return ActionOutcome(True, message, narrate=True)

    def _open_app(self, directive: ActionDirective) -> ActionOutcome:
        launcher = self._require_launcher()
        app = self._param(directive, "app")
        return self._result(launcher.launch(app), "app_opened", "app_not_found", app=app)

    @staticmethod
    def _speak(_directive: ActionDirective) -> None:
        # The reply text is spoken by the agent loop.
        return None
