"""Twilio SMS notification channel."""

import logging
from typing import Callable, Optional

from twilio.rest import Client

from .config import TwilioConfig
from .notifier import NotificationPlatform
from .state_store import StateRepository

logger = logging.getLogger(__name__)


class TwilioNotificationPlatform(NotificationPlatform):
    """Delivers reminders as SMS messages through Twilio."""

    name = "sms"

    def __init__(
        self,
        config: Optional[TwilioConfig],
        state: StateRepository,
        consent: Optional[Callable[[], str]] = None,
        client_factory=Client,
    ):
        super().__init__(state, consent)
        self.config = config
        self.client_factory = client_factory

    def is_supported(self) -> bool:
        return self.config is not None and self.config.is_complete()

    def _deliver(self, title: str, body: str, tag: str) -> None:
        """
        Send an SMS via Twilio.

        Raises:
            Exception: If SMS sending fails.
        """
        message = f"{title}\n{body}"
        try:
            client = self.client_factory(self.config.account_sid, self.config.auth_token)
            message_obj = client.messages.create(
                body=message,
                from_=self.config.from_number,
                to=self.config.to_number
            )
            logger.info(f"SMS reminder {tag} sent. SID: {message_obj.sid}")
        except Exception as e:
            error_str = str(e)
            if "20003" in error_str or "Authenticate" in error_str or "401" in error_str:
                logger.error(
                    "Twilio authentication failed (Error 20003). "
                    "Check TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN. "
                    f"Current Account SID (first 10 chars): {self.config.account_sid[:10]}..."
                )
            else:
                logger.error(f"Failed to send SMS: {e}")
            raise
