"""Outgoing email."""

from fastapi_mail import FastMail, MessageSchema, MessageType

from .core import get_mail_config


def get_mailer() -> FastMail:
    """FastAPI dependency returning a mail client for the configured SMTP server."""
    return FastMail(get_mail_config())


async def send_otp_email(mailer: FastMail, email: str, code: str, ttl_minutes: int):
    """
    Send a one-time code to ``email``.

    Raises:
        fastapi_mail.errors.ConnectionErrors: If the SMTP server rejects the message.
    """
    message = MessageSchema(
        subject="Your NoteChat OTP",
        recipients=[email],
        body=f"Your OTP is: {code}\n\nIt expires in {ttl_minutes} minutes.",
        subtype=MessageType.plain,
    )
    await mailer.send_message(message)
