"""Email notification channel for reminders."""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Callable, Optional

from .config import SMTPConfig
from .notifier import NotificationPlatform
from .state_store import StateRepository

logger = logging.getLogger(__name__)


class EmailNotificationPlatform(NotificationPlatform):
    """Delivers reminders by email over SMTP."""

    name = "email"

    def __init__(
        self,
        config: Optional[SMTPConfig],
        state: StateRepository,
        consent: Optional[Callable[[], str]] = None,
        smtp_factory=None,
    ):
        super().__init__(state, consent)
        self.config = config
        self.smtp_factory = smtp_factory

    def is_supported(self) -> bool:
        return self.config is not None and self.config.is_complete()

    def _connect(self) -> smtplib.SMTP:
        timeout_seconds = 30
        if self.smtp_factory is not None:
            return self.smtp_factory(self.config.host, self.config.port, timeout=timeout_seconds)
        if self.config.port == 465:
            # Use SMTP_SSL for port 465
            return smtplib.SMTP_SSL(self.config.host, self.config.port, timeout=timeout_seconds)
        # Use STARTTLS for port 587
        server = smtplib.SMTP(self.config.host, self.config.port, timeout=timeout_seconds)
        server.starttls()
        return server

    def _deliver(self, title: str, body: str, tag: str) -> None:
        """
        Send the reminder as an email.

        Raises:
            Exception: If email sending fails.
        """
        from_email = self.config.from_email or self.config.username

        msg = MIMEMultipart()
        msg['From'] = from_email
        msg['To'] = self.config.to_email
        msg['Subject'] = title
        # Lets mail clients thread repeated reminders for one evaluation
        msg['X-Entity-Ref-ID'] = tag
        msg.attach(MIMEText(body, 'plain', 'utf-8'))

        logger.debug(f"Connecting to SMTP server: {self.config.host}:{self.config.port}")
        try:
            server = self._connect()
            try:
                server.login(self.config.username, self.config.password)
                server.send_message(msg)
            finally:
                server.quit()
            logger.info(f"Reminder email {tag} sent to {self.config.to_email}")
        except smtplib.SMTPAuthenticationError as e:
            logger.error(
                f"SMTP authentication failed for {self.config.username}. "
                f"For Gmail use an App Password. Error details: {e}"
            )
            raise
        except (smtplib.SMTPException, ConnectionError, TimeoutError) as e:
            logger.error(f"Failed to send email: {e}")
            raise
