"""Outgoing mail for account notifications."""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Callable

from config import Config
from errors import DeliveryError

logger = logging.getLogger(__name__)

RESET_SUBJECT = "Reset your Fencing Portal password"


def reset_link(config: Config, token: str) -> str:
    return f"{config.RESET_URL}?token={token}"


def send_mail(config: Config, to: str, subject: str, body: str) -> None:
    message = MIMEMultipart()
    message["From"] = config.MAIL_FROM
    message["To"] = to
    message["Subject"] = subject
    message.attach(MIMEText(body, "plain"))
    try:
        with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=10) as smtp:
            if config.SMTP_USER:
                smtp.starttls()
                smtp.login(config.SMTP_USER, config.SMTP_PASSWORD or "")
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Could not send mail to %s: %s", to, e)
        raise DeliveryError() from e


def reset_notifier(config: Config) -> Callable[[str, str], None]:
    """Email the reset link. Without SMTP_HOST nothing is sent and a warning is logged."""
    def notify(email: str, token: str) -> None:
        if not config.SMTP_HOST:
            logger.warning("SMTP_HOST is not set; password reset email for %s was not sent", email)
            return
        body = (
            "We received a request to reset your password.\n\n"
            f"Open this link to choose a new one:\n{reset_link(config, token)}\n\n"
            f"The link expires in {config.RESET_TOKEN_TTL_MINUTES} minutes. "
            "If you did not ask for this, you can ignore this email.\n"
        )
        send_mail(config, email, RESET_SUBJECT, body)
        logger.info("Password reset email sent to %s", email)
    return notify
