"""
Email Service — SMTP delivery for login codes.
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from ascendancy.config import Settings

logger = logging.getLogger(__name__)

OTP_SUBJECT = "Your Opian Rewards Login Code"


class EmailService:
    def __init__(self, settings: Settings):
        self.settings = settings

    def send_otp(self, to_email: str, code: str, expiry_minutes: int) -> bool:
        body = (
            f"Your login code is {code}.\n\n"
            f"It expires in {expiry_minutes} minutes. If you did not request it, you can ignore this email."
        )
        html_body = (
            f"<p>Your login code is</p><p style=\"font-size:28px;letter-spacing:6px\"><strong>{code}</strong></p>"
            f"<p>It expires in {expiry_minutes} minutes. If you did not request it, you can ignore this email.</p>"
        )
        return self.send(to_email, OTP_SUBJECT, body, html_body)

    def send(self, to_email: str, subject: str, body: str, html_body: Optional[str] = None) -> bool:
        """Send one message. Returns False instead of raising on SMTP failure."""
        settings = self.settings
        if not settings.smtp_configured:
            logger.warning("SMTP not configured - email to %s not sent", to_email)
            return False

        if html_body:
            msg = MIMEMultipart("alternative")
            msg.attach(MIMEText(body, "plain"))
            msg.attach(MIMEText(html_body, "html"))
        else:
            msg = MIMEText(body, "plain")
        msg["Subject"] = subject
        msg["From"] = settings.SMTP_FROM
        msg["To"] = to_email

        try:
            if settings.SMTP_USE_SSL:
                server = smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30)
            else:
                server = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30)
            with server:
                if not settings.SMTP_USE_SSL:
                    server.starttls()
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
                server.sendmail(settings.SMTP_FROM, [to_email], msg.as_string())
        except smtplib.SMTPAuthenticationError as exc:
            logger.error("SMTP authentication failed: %s", exc)
            return False
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP error sending to %s: %s", to_email, exc)
            return False

        logger.info("Email sent to %s: %s", to_email, subject)
        return True
