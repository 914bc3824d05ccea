"""
Desktop application launcher.

Resolves spoken app names through an alias table, finds the executable on
PATH and starts it detached from the agent process.
"""

from __future__ import annotations

import shutil
import subprocess
import sys
from typing import Final

from observability.logger import log_event


APP_ALIASES: Final[dict[str, tuple[str, ...]]] = {
    "chrome": ("google-chrome", "google-chrome-stable", "chromium", "chromium-browser"),
    "firefox": ("firefox",),
    "telegram": ("telegram-desktop", "telegram"),
    "whatsapp": ("whatsapp-for-linux", "whatsapp"),
    "spotify": ("spotify",),
    "music": ("spotify", "rhythmbox"),
    "terminal": ("gnome-terminal", "konsole", "xterm"),
    "files": ("nautilus", "dolphin", "thunar"),
    "settings": ("gnome-control-center", "systemsettings"),
    "calculator": ("gnome-calculator", "kcalc"),
    "code": ("code",),
    "vscode": ("code",),
}


class DesktopAppLauncher:
    """AppLauncher implementation using PATH lookup and subprocess."""

    def __init__(self, aliases: dict[str, tuple[str, ...]] | None = None) -> None:
        self._aliases = aliases if aliases is not None else APP_ALIASES

    def resolve(self, app: str) -> list[str] | None:
        name = app.strip().lower()
        if sys.platform == "darwin":
            return ["open", "-a", app.strip()]

        for candidate in self._aliases.get(name, ()) + (name,):
            path = shutil.which(candidate)
            if path is not None:
                return [path]
        return None

    def launch(self, app: str) -> bool:
        command = self.resolve(app)
        if command is None:
            log_event({"event_type": "app_not_found", "app": app})
            return False

        subprocess.Popen(  # pylint: disable=consider-using-with
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
        log_event({"event_type": "app_launched", "app": app, "command": command[0]})
        return True
