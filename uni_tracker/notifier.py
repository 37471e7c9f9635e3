"""Platform notification service: permission gating and the console channel."""

import logging
import sys
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, TextIO

from .config import NotificationConfig
from .state_store import StateRepository

logger = logging.getLogger(__name__)

GRANTED = "granted"
DENIED = "denied"
DEFAULT = "default"
UNSUPPORTED = "unsupported"


class ShownNotification:
    """A notification that has been delivered and may still be dismissed or clicked."""

    def __init__(
        self,
        title: str,
        body: str,
        tag: str,
        on_click: Optional[Callable[[], None]] = None,
        on_close: Optional[Callable[["ShownNotification"], None]] = None,
    ):
        self.title = title
        self.body = body
        self.tag = tag
        self.on_click = on_click
        self.on_close = on_close
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.on_close:
            self.on_close(self)

    def click(self) -> None:
        """Run the click handler (focus the app) and dismiss."""
        if self.on_click:
            self.on_click()
        self.close()


class NotificationPlatform(ABC):
    """
    Capability-gated notification channel.

    Permission is one of "granted", "denied", "default" or "unsupported". The
    user's answer is persisted in local state; `consent` is the interactive flow
    used to ask for it and must return "granted", "denied" or "default".
    """

    name = "base"

    def __init__(self, state: StateRepository, consent: Optional[Callable[[], str]] = None):
        self.state = state
        self.consent = consent

    @abstractmethod
    def is_supported(self) -> bool:
        """Whether the channel can deliver at all in this environment."""
        pass

    @abstractmethod
    def _deliver(self, title: str, body: str, tag: str) -> None:
        """Send the notification. Raises on failure."""
        pass

    def permission(self) -> str:
        if not self.is_supported():
            return UNSUPPORTED
        return self.state.get_permission()

    def request_permission(self) -> str:
        """
        Ask the user for permission unless they already answered.

        A denial is final: the consent flow is never re-run after "denied".
        """
        current = self.permission()
        if current in (GRANTED, DENIED, UNSUPPORTED):
            return current
        if self.consent is None:
            return DEFAULT

        try:
            result = self.consent()
        except Exception as e:
            logger.debug(f"Notification consent flow failed, treating as denied: {e}")
            result = DENIED

        if result in (GRANTED, DENIED):
            self.state.set_permission(result)
            return result
        return DEFAULT

    def should_prompt(self) -> bool:
        """True while the user has neither answered nor dismissed the permission prompt."""
        return self.permission() == DEFAULT and not self.state.is_prompt_dismissed()

    def dismiss_prompt(self) -> None:
        self.state.set_prompt_dismissed(True)

    def show(
        self,
        title: str,
        body: str,
        tag: str,
        on_click: Optional[Callable[[], None]] = None,
    ) -> ShownNotification:
        """
        Deliver a notification.

        Raises:
            PermissionError: If permission has not been granted.
            Exception: Whatever the channel raises on delivery failure.
        """
        if self.permission() != GRANTED:
            raise PermissionError(f"Notifications not permitted on {self.name} channel")
        self._deliver(title, body, tag)
        return ShownNotification(title, body, tag, on_click=on_click)


class ConsoleNotificationPlatform(NotificationPlatform):
    """Writes notifications to the terminal; notifications sharing a tag replace each other."""

    name = "console"

    def __init__(
        self,
        state: StateRepository,
        consent: Optional[Callable[[], str]] = None,
        stream: Optional[TextIO] = None,
    ):
        super().__init__(state, consent)
        self.stream = stream or sys.stdout
        self.active: Dict[str, ShownNotification] = {}
        # Auto-close timers call _forget from their own threads
        self._lock = threading.Lock()

    def is_supported(self) -> bool:
        return True

    def _deliver(self, title: str, body: str, tag: str) -> None:
        self.stream.write(f"\n🔔 {title}\n   {body}\n")
        self.stream.flush()

    def _forget(self, shown: ShownNotification) -> None:
        with self._lock:
            if self.active.get(shown.tag) is shown:
                self.active.pop(shown.tag, None)

    def show(self, title, body, tag, on_click=None) -> ShownNotification:
        shown = super().show(title, body, tag, on_click=on_click)
        shown.on_close = self._forget
        with self._lock:
            previous = self.active.get(tag)
            self.active[tag] = shown
        # Outside the lock: closing calls back into _forget
        if previous is not None:
            previous.close()
        return shown


def create_platform(
    config: NotificationConfig,
    state: StateRepository,
    consent: Optional[Callable[[], str]] = None,
) -> NotificationPlatform:
    """Create the notification platform selected by configuration."""
    if config.method == "sms":
        from .twilio_notifier import TwilioNotificationPlatform
        return TwilioNotificationPlatform(config.twilio, state, consent)
    if config.method == "email":
        from .email_notifier import EmailNotificationPlatform
        return EmailNotificationPlatform(config.smtp, state, consent)
    return ConsoleNotificationPlatform(state, consent)
