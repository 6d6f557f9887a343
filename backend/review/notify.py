"""Reviewer notifications.

Sessions never print; they report through an injected `Notifier`, the
terminal equivalent of the dashboard's toasts.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from rich.console import Console


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class NotificationAction:
    """A follow-up the reviewer can trigger from a notification (e.g. Retry)."""
    label: str
    callback: Callable[[], Awaitable[Any]]


@dataclass
class Notification:
    level: NotificationLevel
    title: str
    message: str = ""
    action: Optional[NotificationAction] = None


class Notifier(ABC):
    """Receives non-blocking notifications from a review session."""

    @abstractmethod
    def notify(self, notification: Notification) -> None:
        pass

    def success(self, title: str, message: str = "") -> None:
        self.notify(Notification(NotificationLevel.SUCCESS, title, message))

    def error(self, title: str, message: str = "", action: Optional[NotificationAction] = None) -> None:
        self.notify(Notification(NotificationLevel.ERROR, title, message, action))

    def warning(self, title: str, message: str = "") -> None:
        self.notify(Notification(NotificationLevel.WARNING, title, message))

    def info(self, title: str, message: str = "") -> None:
        self.notify(Notification(NotificationLevel.INFO, title, message))


class RecordingNotifier(Notifier):
    """Keeps notifications in memory (headless runs and tests)."""

    def __init__(self):
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    @property
    def titles(self) -> list[str]:
        return [n.title for n in self.notifications]

    def last(self) -> Optional[Notification]:
        return self.notifications[-1] if self.notifications else None


class ConsoleNotifier(Notifier):
    """Prints notifications with rich; remembers the last offered action."""

    STYLES = {
        NotificationLevel.SUCCESS: ("green", "✓"),
        NotificationLevel.ERROR: ("red", "✗"),
        NotificationLevel.WARNING: ("yellow", "!"),
        NotificationLevel.INFO: ("cyan", "i"),
    }

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self.pending_action: Optional[NotificationAction] = None

    def notify(self, notification: Notification) -> None:
        color, icon = self.STYLES[notification.level]
        line = f"[{color}]{icon}[/{color}] [bold]{notification.title}[/bold]"
        if notification.message:
            line += f" - {notification.message}"
        if notification.action:
            line += f" [dim]({notification.action.label} available)[/dim]"
            self.pending_action = notification.action
        self.console.print(line)

    def take_action(self) -> Optional[NotificationAction]:
        """Hand over the last offered action, once."""
        action, self.pending_action = self.pending_action, None
        return action
