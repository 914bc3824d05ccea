"""
Collaborator protocols.

The agent talks to the outside world (screen, browser, device, apps,
notifications) only through these narrow capabilities.

This module contains:
- Narrow Protocols (capabilities, not implementations)
- The small value types they exchange
- Zero orchestration logic
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from services.notifications import Notification


# ---------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class BatteryInfo:
    percentage: int
    is_charging: bool
    temperature_c: float | None = None


@dataclass(frozen=True)
class NetworkInfo:
    type: str
    is_connected: bool
    speed_mbps: int = 0


@dataclass(frozen=True)
class WebPage:
    title: str
    url: str
    text: str = ""

    def to_context_string(self) -> str:
        lines = [f"Title: {self.title}", f"URL: {self.url}"]
        if self.text:
            lines.append(f"Content:\n{self.text}")
        return "\n".join(lines)


@dataclass(frozen=True)
class ScreenMessage:
    sender: str
    text: str


@dataclass(frozen=True)
class ScreenSnapshot:
    foreground_app: str
    chat_name: str | None
    text: str

    def to_context_string(self) -> str:
        lines = [f"Foreground app: {self.foreground_app}"]
        if self.chat_name:
            lines.append(f"Chat with: {self.chat_name}")
        lines.append("Screen text:")
        lines.append(self.text)
        return "\n".join(lines)


# ---------------------------------------------------------------------
# Capability Protocols
# ---------------------------------------------------------------------

@runtime_checkable
class UIAutomation(Protocol):
    def snapshot(self) -> ScreenSnapshot | None: ...
    def read_screen_text(self) -> str: ...
    def read_last_messages(self, count: int) -> list[ScreenMessage]: ...
    def send_message(self, text: str) -> bool: ...
    def click_by_label(self, label: str) -> bool: ...
    def type_text(self, text: str) -> bool: ...
    def scroll(self, direction: str) -> bool: ...
    def navigate(self, target: str) -> bool: ...


@runtime_checkable
class Browser(Protocol):
    @property
    def last_page(self) -> WebPage | None: ...
    def open_url(self, url: str) -> bool: ...
    def search(self, query: str) -> bool: ...


@runtime_checkable
class DeviceInfo(Protocol):
    def battery(self) -> BatteryInfo | None: ...
    def network(self) -> NetworkInfo: ...
    def summary(self) -> str: ...


@runtime_checkable
class AppLauncher(Protocol):
    def launch(self, app: str) -> bool:
        """
        Start an application by name.

        Returns False when no such application is installed.
        Raises on any other failure.
        """


@runtime_checkable
class NotificationSource(Protocol):
    def recent(self, count: int) -> list[Notification]:
        """Most recent `count` notifications, oldest first."""
