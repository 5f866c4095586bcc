import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Optional

from config import Settings, get_settings

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    def is_configured(self) -> bool:
        s = self.settings
        return bool(s.smtp_host and s.smtp_port and s.mail_from)

    def _send(self, to_email: str, subject: str, body_text: str, body_html: str) -> None:
        s = self.settings
        msg = MIMEMultipart("alternative")
        msg["From"] = s.mail_from
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(body_text, "plain", "utf-8"))
        msg.attach(MIMEText(body_html, "html", "utf-8"))

        if s.smtp_port == 465:
            server: smtplib.SMTP = smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=10)
        else:
            server = smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=10)
        with server:
            if s.smtp_port != 465:
                server.starttls()
            if s.smtp_user and s.smtp_pass:
                server.login(s.smtp_user, s.smtp_pass)
            server.sendmail(s.mail_from, [to_email], msg.as_string())

    def send_reset_password_email(
        self, to_email: str, name: Optional[str], reset_link: str
    ) -> bool:
        if not self.is_configured():
            logger.info("reset_email: skipped reason=smtp_not_configured")
            return False

        first_name = (name or "").strip().split(" ")[0] or "Hello"
        subject = "Password reset"
        body_text = (
            f"{first_name},\n\n"
            "We received a request to reset your password.\n\n"
            "Use the link below to choose a new password (valid for a limited time):\n"
            f"{reset_link}\n\n"
            "If you did not ask for this, you can ignore this email.\n"
        )
        link = escape(reset_link, quote=True)
        body_html = (
            f"<p>{escape(first_name)},</p>"
            "<p>We received a request to reset your password.</p>"
            "<p>Use the link below to choose a new password (valid for a limited time):</p>"
            f'<p><a href="{link}" target="_blank" rel="noreferrer">{link}</a></p>'
            "<p>If you did not ask for this, you can ignore this email.</p>"
        )
        self._send(to_email, subject, body_text, body_html)
        logger.info("reset_email: sent")
        return True
