from __future__ import annotations

"""
Failure notifications.

Sync failures are reported by e-mail to the recipients in the manifest.
Sending is best-effort: a notification that cannot be delivered is logged
and never replaces the failure it was reporting.
"""

import html
import logging
import os
import smtplib
import socket
import traceback
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr

from softpaq_mirror.core.errors import NotificationSendFailed
from softpaq_mirror.repository.manifest import NotificationConfig

logger = logging.getLogger(__name__)

# Overrides the stored password so it can be kept out of the manifest
PASSWORD_ENV_VAR = "SOFTPAQ_MIRROR_SMTP_PASSWORD"


def format_error_html(message: str, exception: BaseException | None = None, repository: str | None = None) -> str:
    """Render a failure as a small HTML document.

    Args:
        message: Summary of what failed
        exception: The exception behind the failure, if any
        repository: Repository root, shown in the header
    """
    rows = [
        ("Time", datetime.now(timezone.utc).isoformat(timespec="seconds")),
        ("Host", socket.gethostname()),
    ]
    if repository:
        rows.append(("Repository", repository))

    details = ""
    if exception is not None:
        rows.append(("Error type", type(exception).__name__))
        for key, value in sorted(vars(exception).items()):
            if not key.startswith("_") and value is not None:
                rows.append((key.replace("_", " ").capitalize(), str(value)))
        trace = "".join(traceback.format_exception(type(exception), exception, exception.__traceback__))
        details = f"<h3>Details</h3>\n<pre>{html.escape(trace)}</pre>\n"

    table = "\n".join(
        f"<tr><th align=\"left\">{html.escape(k)}</th><td>{html.escape(v)}</td></tr>" for k, v in rows
    )
    return (
        "<html><body>\n"
        "<h2>SoftPaq repository sync failed</h2>\n"
        f"<p>{html.escape(message)}</p>\n"
        f"<table>\n{table}\n</table>\n"
        f"{details}"
        "</body></html>\n"
    )


class NotificationDispatcher:
    """Sends failure notifications over SMTP."""

    def __init__(self, config: NotificationConfig | None):
        self.config = config

    @property
    def is_configured(self) -> bool:
        """Both a server and at least one recipient are required."""
        return bool(self.config and self.config.server and self.config.addresses)

    def _deliver(self, message: EmailMessage) -> None:
        config = self.config
        password = os.getenv(PASSWORD_ENV_VAR) or config.password
        try:
            with smtplib.SMTP(config.server, config.port, timeout=60) as server:
                if config.tls:
                    server.starttls()
                if config.username:
                    server.login(config.username, password or "")
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationSendFailed(f"Could not send notification via {config.server}: {e}") from e

    def send(self, subject: str, html_body: str) -> bool:
        """Send one message to all recipients.

        Returns:
            True if the message was handed to the SMTP server
        """
        if not self.is_configured:
            logger.debug("Notifications not configured, skipping")
            return False

        config = self.config
        sender = config.from_address or f"softpaq-mirror@{socket.gethostname()}"
        message = EmailMessage()
        message["From"] = formataddr((config.from_name or "", sender))
        message["To"] = ", ".join(config.addresses)
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html_body, subtype="html")

        try:
            self._deliver(message)
        except NotificationSendFailed as e:
            logger.error(str(e))
            return False

        logger.info(f"Notification sent to {len(config.addresses)} recipient(s)")
        return True

    def notify_failure(
        self, message: str, exception: BaseException | None = None, repository: str | None = None
    ) -> bool:
        """Send a failure notification (no-op when not configured)."""
        if not self.is_configured:
            return False
        subject = f"SoftPaq repository sync failure on {socket.gethostname()}"
        return self.send(subject, format_error_html(message, exception, repository))
