import logging
import smtplib
from email.message import EmailMessage

from .config import settings

logger = logging.getLogger(__name__)


def send_mail(to_addr: str, subject: str, body: str) -> None:
    if not settings.smtp_host:
        logger.info("SMTP not configured, not sending %r to %s", subject, to_addr)
        return

    message = EmailMessage()
    message["From"] = settings.from_email
    message["To"] = to_addr
    message["Subject"] = subject
    message.set_content(body)

    with smtplib.SMTP(host=settings.smtp_host, port=settings.smtp_port, timeout=15) as smtp:
        smtp.ehlo()
        if settings.smtp_starttls:
            smtp.starttls()
            smtp.ehlo()
        if settings.smtp_user and settings.smtp_pass:
            smtp.login(settings.smtp_user, settings.smtp_pass)
        smtp.send_message(message)
    logger.info("Sent %r to %s", subject, to_addr)


def send_otp_mail(to_addr: str, otp: str) -> None:
    send_mail(
        to_addr,
        "Your OTP Code",
        f"Your OTP is: {otp}. It is valid for {settings.otp_ttl_minutes} minutes.",
    )


def send_invite_mail(to_addr: str, project_name: str) -> None:
    send_mail(
        to_addr,
        f"You have been invited to {project_name}",
        f"You have been invited to collaborate on the project \"{project_name}\". "
        "Sign up with this email address and accept the invite to get access.",
    )
