import secrets
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo on the way back; treat naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_uuid() -> str:
    return str(uuid.uuid4())


def generate_otp() -> str:
    return str(secrets.randbelow(900000) + 100000)


def normalize_email(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def etag_from(version: int) -> str:
    return f'"{version}"'


def send_response(status_code: int, message: str, **extra) -> JSONResponse:
    success = 200 <= status_code < 400
    body = {"success": success, "message": message, **extra}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))
