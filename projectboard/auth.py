from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, Header

from .config import settings
from .db import UserRecord
from .errors import UnauthorizedError, ValidationError
from .storage import Storage, get_storage
from .utils import as_utc, generate_otp, new_uuid, now_utc

logger = logging.getLogger(__name__)

OTP_SIGNUP = "signup"
OTP_LOGIN = "login"
JWT_ALGORITHM = "HS256"


def hash_secret(value: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(value.encode("utf-8"), salt).decode("utf-8")


def check_secret(value: str, hashed: str) -> bool:
    if not hashed:
        return False
    return bcrypt.checkpw(value.encode("utf-8"), hashed.encode("utf-8"))


# === Tokens ===


def issue_token(user_id: str) -> str:
    now = now_utc()
    payload = {
        "userId": user_id,
        "jti": new_uuid(),
        "iat": now,
        "exp": now + timedelta(hours=settings.jwt_expires_hours),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> str:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise UnauthorizedError("Invalid token")
    user_id = payload.get("userId")
    if not isinstance(user_id, str) or not user_id:
        raise UnauthorizedError("Invalid token")
    return user_id


def start_session(storage: Storage, user: UserRecord) -> str:
    """Mint a token and store it as the user's only valid session."""
    token = issue_token(user.id)
    user.token = token
    storage.save_user(user)
    logger.info("Session started for user %s", user.id)
    return token


def end_session(storage: Storage, user: UserRecord) -> None:
    user.token = ""
    storage.save_user(user)


# === One-time passwords ===


def issue_otp(storage: Storage, email: str, otp_type: str) -> str:
    otp = generate_otp()
    expires_at = now_utc() + timedelta(minutes=settings.otp_ttl_minutes)
    storage.replace_otp(email, otp_type, hash_secret(otp), expires_at)
    return otp


def verify_otp(storage: Storage, email: str, otp_type: str, otp: str) -> None:
    record = storage.latest_otp(email, otp_type)
    if record is None:
        raise ValidationError("OTP not found or expired")
    if as_utc(record.expires_at) < now_utc():
        storage.delete_otps(email, otp_type)
        raise ValidationError("OTP expired")
    if not check_secret(otp, record.otp_hash):
        raise ValidationError("Invalid OTP")
    storage.delete_otps(email, otp_type)


# === Request dependency ===


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> UserRecord:
    if not authorization:
        raise UnauthorizedError("No token provided")
    prefix = "Bearer "
    if not authorization.startswith(prefix):
        raise UnauthorizedError("Invalid token")
    token = authorization[len(prefix) :].strip()
    user = storage.get_user(decode_token(token))
    if user is None or user.token != token:
        raise UnauthorizedError("Session expired, please login again")
    return user
