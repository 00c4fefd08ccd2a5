from datetime import timedelta

from sqlalchemy.orm import Session

from afritok.core.errors import RateLimited
from afritok.core.utils import utc_now_naive
from afritok.db.models.auth_attempt import AuthAttempt


def check_rate_limit(db: Session, phone: str, action: str, limit: int, window_minutes: int) -> None:
    since = utc_now_naive() - timedelta(minutes=window_minutes)
    attempts = (
        db.query(AuthAttempt)
        .filter(AuthAttempt.phone == phone, AuthAttempt.action == action, AuthAttempt.created_at >= since)
        .count()
    )
    if attempts >= limit:
        raise RateLimited(details={"action": action, "window_minutes": window_minutes})


def record_attempt(db: Session, phone: str, action: str) -> None:
    db.add(AuthAttempt(phone=phone, action=action, created_at=utc_now_naive()))
    db.commit()
