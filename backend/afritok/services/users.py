from datetime import datetime

from sqlalchemy.orm import Session

from afritok.core.utils import utc_now_naive
from afritok.db.models.user import User

LOGIN_METHOD_PHONE_OTP = "phone_otp"


def default_display_name(phone: str) -> str:
    return f"User {phone[-4:]}"


def get_user_by_phone(db: Session, phone: str) -> User | None:
    return db.query(User).filter(User.phone == phone).first()


def find_or_create_user_by_phone(db: Session, phone: str, now: datetime | None = None) -> User:
    """Create the user on first login, otherwise touch ``last_signed_in``.

    A soft-deleted account is restored, since proving ownership of the phone
    is all a new signup would need anyway.
    """
    now = now or utc_now_naive()
    user = get_user_by_phone(db, phone)
    if user is None:
        user = User(
            phone=phone,
            name=default_display_name(phone),
            role="user",
            login_method=LOGIN_METHOD_PHONE_OTP,
            is_deleted=False,
            created_at=now,
            updated_at=now,
            last_signed_in=now,
        )
        db.add(user)
    else:
        user.is_deleted = False
        user.login_method = LOGIN_METHOD_PHONE_OTP
        user.last_signed_in = now
        user.updated_at = now
    db.commit()
    db.refresh(user)
    return user


def update_user_profile(db: Session, user: User, changes: dict) -> User:
    for field in ("name", "bio", "avatar_url", "country"):
        if field in changes:
            setattr(user, field, changes[field])
    user.updated_at = utc_now_naive()
    db.commit()
    db.refresh(user)
    return user


def soft_delete_user(db: Session, user: User) -> None:
    user.is_deleted = True
    user.updated_at = utc_now_naive()
    db.commit()
