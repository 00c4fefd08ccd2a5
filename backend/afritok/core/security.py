import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fastapi import Depends, Request, Response
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from afritok.core.config import get_settings
from afritok.core.errors import NotAuthenticated
from afritok.db.models.user import User
from afritok.db.session import get_db

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
SESSION_COOKIE_NAME = "afritok_session"
OTP_CODE_MIN = 100000
OTP_CODE_MAX = 999999


@dataclass(frozen=True)
class SessionClaims:
    user_id: int
    phone: str
    expires_at: datetime


def _get_secret_key() -> str:
    return get_settings().secret_key


def _session_ttl() -> timedelta:
    return timedelta(days=get_settings().session_ttl_days)


def generate_otp_code() -> str:
    return str(OTP_CODE_MIN + secrets.randbelow(OTP_CODE_MAX - OTP_CODE_MIN + 1))


def generate_challenge_id() -> str:
    return secrets.token_urlsafe(16)


def hash_otp_code(phone: str, challenge_id: str, code: str, secret: str | None = None) -> str:
    key = (secret or _get_secret_key()).encode("utf-8")
    message = f"{phone}|{challenge_id}|{code}".encode("utf-8")
    return hmac.new(key, message, hashlib.sha256).hexdigest()


def verify_otp_code(phone: str, challenge_id: str, code: str, code_hash: str, secret: str | None = None) -> bool:
    return hmac.compare_digest(hash_otp_code(phone, challenge_id, code, secret), code_hash)


def create_session_token(user_id: int, phone: str, now: datetime | None = None) -> str:
    issued_at = now or datetime.now(timezone.utc)
    claims = {
        "sub": phone,
        "uid": int(user_id),
        "iat": issued_at,
        "exp": issued_at + _session_ttl(),
    }
    return jwt.encode(claims, _get_secret_key(), algorithm=ALGORITHM)


def decode_session_token(token: str | None) -> SessionClaims | None:
    if not token:
        return None
    try:
        payload = jwt.decode(token, _get_secret_key(), algorithms=[ALGORITHM])
    except JWTError:
        return None

    phone = payload.get("sub")
    user_id = payload.get("uid")
    exp = payload.get("exp")
    if not isinstance(phone, str) or not phone:
        return None
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        return None
    if not isinstance(exp, (int, float)):
        return None
    return SessionClaims(
        user_id=user_id,
        phone=phone,
        expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
    )


def set_session_cookie(response: Response, request: Request, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        max_age=int(_session_ttl().total_seconds()),
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.is_production or request.url.scheme == "https",
    )


def clear_session_cookie(response: Response) -> None:
    settings = get_settings()
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )


def resolve_session_user(request: Request, db: Session) -> User | None:
    """Return the user behind the session cookie, or None for anonymous traffic."""
    claims = decode_session_token(request.cookies.get(SESSION_COOKIE_NAME))
    if claims is None:
        return None

    user = db.get(User, claims.user_id)
    if user is None or user.is_deleted or user.phone != claims.phone:
        logger.info("Session refers to a missing or changed user user_id=%s", claims.user_id)
        return None
    return user


def get_optional_user(request: Request, db: Session = Depends(get_db)) -> User | None:
    return resolve_session_user(request, db)


def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
    if user is None:
        raise NotAuthenticated()
    return user
