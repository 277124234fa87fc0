from __future__ import annotations
import logging
import secrets
from datetime import timedelta

import bcrypt
from itsdangerous import URLSafeSerializer, URLSafeTimedSerializer, BadSignature, SignatureExpired
from fastapi import Request, Response
from sqlmodel import Session, select

from .config import (
    SECRET_KEY,
    ALLOWED_EMAIL_DOMAINS,
    MANAGER_BOOTSTRAP_EMAIL,
    MANAGER_BOOTSTRAP_PASSWORD,
    OTP_TTL_MINUTES,
    OTP_RESEND_COOLDOWN_SECONDS,
    RESET_TOKEN_MAX_AGE_SECONDS,
)
from .errors import AuthError
from .mailer import send_otp_email, send_password_reset_email
from .models import OtpVerification, User, ROLE_MANAGER, ROLE_STUDENT
from .passwords import validate_password
from .utils import now_utc

logger = logging.getLogger(__name__)

serializer = URLSafeSerializer(SECRET_KEY, salt="session")
reset_serializer = URLSafeTimedSerializer(SECRET_KEY, salt="password-reset")

COOKIE_NAME = "canteen_session"

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")

def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))

def set_login_cookie(response: Response, user_id: int) -> None:
    token = serializer.dumps({"user_id": user_id})
    response.set_cookie(
        COOKIE_NAME,
        token,
        httponly=True,
        samesite="lax",
        secure=False,  # set True behind HTTPS
        max_age=60 * 60 * 24 * 14,  # 14 days
    )

def clear_login_cookie(response: Response) -> None:
    response.delete_cookie(COOKIE_NAME)

def get_user_id_from_request(request: Request) -> int | None:
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        return None
    try:
        data = serializer.loads(token)
        return int(data.get("user_id"))
    except (BadSignature, TypeError, ValueError, AttributeError):
        return None

def email_domain_ok(email: str) -> bool:
    if not ALLOWED_EMAIL_DOMAINS:
        return True
    parts = email.lower().split("@")
    if len(parts) != 2:
        return False
    return parts[1] in ALLOWED_EMAIL_DOMAINS

def _check_password_strength(password: str) -> None:
    result = validate_password(password)
    if not result.is_valid:
        raise AuthError(result.issues[0])

# ---- accounts ----

def ensure_bootstrap_manager(session: Session) -> User:
    existing = session.exec(select(User).where(User.email == MANAGER_BOOTSTRAP_EMAIL)).first()
    if existing:
        return existing
    manager = User(
        email=MANAGER_BOOTSTRAP_EMAIL,
        full_name="Canteen Manager",
        password_hash=hash_password(MANAGER_BOOTSTRAP_PASSWORD),
        role=ROLE_MANAGER,
        is_verified=True,
    )
    session.add(manager)
    session.commit()
    session.refresh(manager)
    logger.info("Bootstrapped manager account", extra={"email": manager.email})
    return manager

def register_student(
    session: Session,
    full_name: str,
    email: str,
    password: str,
    student_id: str | None = None,
) -> User:
    email = email.strip().lower()
    full_name = full_name.strip()
    if not full_name:
        raise AuthError("Name is required")
    if not email_domain_ok(email):
        raise AuthError("Please use your campus email address")
    _check_password_strength(password)
    if session.exec(select(User).where(User.email == email)).first():
        raise AuthError("An account with this email already exists")

    user = User(
        email=email,
        full_name=full_name,
        student_id=(student_id or "").strip() or None,
        password_hash=hash_password(password),
        role=ROLE_STUDENT,
        is_verified=False,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Registered student", extra={"user_id": user.id, "email": email})
    return user

def authenticate(session: Session, email: str, password: str) -> User:
    email = email.strip().lower()
    user = session.exec(select(User).where(User.email == email)).first()
    if not user or not verify_password(password, user.password_hash):
        raise AuthError("Invalid credentials")
    if not user.is_verified:
        raise AuthError("Please verify your email before logging in")
    logger.info("Login", extra={"user_id": user.id})
    return user

def change_password(session: Session, user_id: int, current_password: str, new_password: str) -> None:
    user = session.get(User, user_id)
    if not user or not verify_password(current_password, user.password_hash):
        raise AuthError("Current password is incorrect")
    _check_password_strength(new_password)
    user.password_hash = hash_password(new_password)
    session.add(user)
    session.commit()

# ---- email OTP ----

def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))

def send_otp(session: Session, email: str) -> OtpVerification:
    email = email.strip().lower()
    now = now_utc()
    last = session.exec(
        select(OtpVerification)
        .where(OtpVerification.email == email)
        .order_by(OtpVerification.created_at.desc())
    ).first()
    if last and (now - last.created_at).total_seconds() < OTP_RESEND_COOLDOWN_SECONDS:
        raise AuthError("Please wait a minute before requesting another code")

    # only the newest code stays valid
    pending = session.exec(
        select(OtpVerification).where(
            OtpVerification.email == email,
            OtpVerification.verified == False,  # noqa: E712
            OtpVerification.expires_at > now,
        )
    ).all()
    for old in pending:
        old.expires_at = now
        session.add(old)

    record = OtpVerification(
        email=email,
        otp=generate_otp(),
        expires_at=now + timedelta(minutes=OTP_TTL_MINUTES),
        created_at=now,
    )
    session.add(record)
    session.commit()
    session.refresh(record)
    send_otp_email(email, record.otp, OTP_TTL_MINUTES)
    logger.info("OTP issued", extra={"email": email})
    return record

def verify_otp(session: Session, email: str, otp: str) -> bool:
    email = email.strip().lower()
    record = session.exec(
        select(OtpVerification)
        .where(
            OtpVerification.email == email,
            OtpVerification.otp == otp.strip(),
            OtpVerification.verified == False,  # noqa: E712
            OtpVerification.expires_at > now_utc(),
        )
        .order_by(OtpVerification.created_at.desc())
    ).first()
    if not record:
        logger.info("OTP rejected", extra={"email": email})
        return False

    record.verified = True
    session.add(record)
    user = session.exec(select(User).where(User.email == email)).first()
    if user:
        user.is_verified = True
        session.add(user)
    session.commit()
    logger.info("OTP verified", extra={"email": email})
    return True

# ---- password reset ----

def request_password_reset(session: Session, email: str, base_url: str) -> bool:
    """Mail a reset link if the account exists.

    Returns whether a mail was sent; callers should not reveal it.
    """
    email = email.strip().lower()
    user = session.exec(select(User).where(User.email == email)).first()
    if not user:
        return False
    token = reset_serializer.dumps({"user_id": user.id, "pw": user.password_hash[-10:]})
    link = f"{base_url.rstrip('/')}/reset-password?token={token}"
    send_password_reset_email(email, link)
    return True

def reset_password(session: Session, token: str, new_password: str) -> User:
    try:
        data = reset_serializer.loads(token, max_age=RESET_TOKEN_MAX_AGE_SECONDS)
    except SignatureExpired:
        raise AuthError("This reset link has expired")
    except BadSignature:
        raise AuthError("This reset link is invalid")

    user = session.get(User, int(data.get("user_id", 0)))
    # A used link stops matching once the hash changes
    if not user or user.password_hash[-10:] != data.get("pw"):
        raise AuthError("This reset link is invalid")
    _check_password_strength(new_password)
    user.password_hash = hash_password(new_password)
    session.add(user)
    session.commit()
    logger.info("Password reset", extra={"user_id": user.id})
    return user
