from __future__ import annotations

import logging
from collections import deque

logger = logging.getLogger(__name__)

# Messages handed to the mail relay, newest last. Tests read this; the relay
# itself is outside this service.
outbox: deque[dict] = deque(maxlen=200)


def send_email(to: str, subject: str, body: str) -> bool:
    outbox.append({"to": to, "subject": subject, "body": body})
    logger.info("Mail queued: %s", subject, extra={"email": to})
    return True


def send_otp_email(to: str, otp: str, ttl_minutes: int) -> bool:
    return send_email(
        to,
        "Your verification code",
        f"Your canteen verification code is {otp}. It expires in {ttl_minutes} minutes.",
    )


def send_password_reset_email(to: str, link: str) -> bool:
    return send_email(
        to,
        "Reset your password",
        f"Use this link to choose a new password: {link}\nIf you did not ask for this, ignore this email.",
    )
