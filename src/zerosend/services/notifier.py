"""Email notification of download links.

Sends the share URL to the recipient once a transfer is finalized. Sending
is best effort: ``send_download_link`` reports the outcome as a boolean and
never raises.

Templates live in ``zerosend/templates/email`` and carry no file metadata:
the email only says that a transfer is waiting and where to fetch it.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING

from jinja2 import Environment, PackageLoader, select_autoescape

if TYPE_CHECKING:
    from datetime import datetime

    from zerosend.core.config import SMTPSettings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised internally when SMTP delivery fails."""


class EmailNotifier:
    """Renders and sends download-link emails over SMTP."""

    def __init__(self, smtp_settings: SMTPSettings, *, app_name: str = "ZeroSend") -> None:
        """Initialize the notifier.

        Args:
            smtp_settings: SMTP connection settings.
            app_name: Product name shown in the email.
        """
        self.smtp_settings = smtp_settings
        self.app_name = app_name
        self._jinja_env = Environment(
            loader=PackageLoader("zerosend", "templates/email"),
            autoescape=select_autoescape(["html", "xml"]),
        )

    async def send_download_link(
        self, recipient_address: str, share_url: str, expires_at: datetime
    ) -> bool:
        """Email the share URL to the recipient.

        Args:
            recipient_address: Recipient email address.
            share_url: Link to the download landing page.
            expires_at: When the transfer expires.

        Returns:
            True if the SMTP server accepted the message, False otherwise.
        """
        try:
            html_body, text_body = self._render(share_url, expires_at)
            subject = f"{self.app_name}: an encrypted file is waiting for you"
            # smtplib blocks; keep it off the event loop
            message_id = await asyncio.to_thread(
                self._send_email, recipient_address, subject, html_body, text_body
            )
        except Exception:
            logger.warning("Download link email could not be sent", exc_info=True)
            return False

        logger.info("Download link email sent", extra={"message_id": message_id})
        return True

    def _render(self, share_url: str, expires_at: datetime) -> tuple[str, str]:
        context = {
            "app_name": self.app_name,
            "share_url": share_url,
            "expires_at": expires_at.strftime("%Y-%m-%d %H:%M UTC"),
        }
        html_body = self._jinja_env.get_template("download_link.html").render(**context)
        text_body = self._jinja_env.get_template("download_link.txt").render(**context)
        return html_body, text_body

    def _send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> str:
        """Send an email via SMTP.

        Args:
            to_email: Recipient email address.
            subject: Email subject line.
            html_body: HTML version of the email body.
            text_body: Plain text version of the email body.

        Returns:
            SMTP message ID.

        Raises:
            EmailDeliveryError: If the email cannot be sent.
        """
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.smtp_settings.from_name} <{self.smtp_settings.from_address}>"
        msg["To"] = to_email

        domain = self.smtp_settings.from_address.rpartition("@")[2] or "localhost"
        message_id = f"<{secrets.token_hex(16)}@{domain}>"
        msg["Message-ID"] = message_id

        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            if self.smtp_settings.use_ssl:
                # Implicit TLS (port 465)
                server = smtplib.SMTP_SSL(
                    self.smtp_settings.host,
                    self.smtp_settings.port,
                    timeout=self.smtp_settings.timeout,
                    context=ssl.create_default_context(),
                )
            else:
                server = smtplib.SMTP(
                    self.smtp_settings.host,
                    self.smtp_settings.port,
                    timeout=self.smtp_settings.timeout,
                )
                if self.smtp_settings.use_tls:
                    server.starttls(context=ssl.create_default_context())

            if self.smtp_settings.username and self.smtp_settings.password:
                server.login(
                    self.smtp_settings.username,
                    self.smtp_settings.password.get_secret_value(),
                )

            server.sendmail(
                self.smtp_settings.from_address,
                [to_email],
                msg.as_string(),
            )
            server.quit()

        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"SMTP error: {e}") from e

        return message_id
