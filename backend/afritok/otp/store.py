"""Storage for outstanding OTP challenges, one per phone number.

Every consuming delete goes through :meth:`ChallengeStore.delete_if_match` so a
verify that read an older challenge can never remove a newer one issued for the
same phone in the meantime.
"""

import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from afritok.db.models.otp_challenge import OtpChallenge


@dataclass(frozen=True)
class Challenge:
    phone: str
    challenge_id: str
    code_hash: str
    issued_at: datetime
    expires_at: datetime
    attempts: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class ChallengeStore(Protocol):
    def put(self, challenge: Challenge) -> None: ...

    def get(self, phone: str) -> Challenge | None: ...

    def delete(self, phone: str) -> None: ...

    def delete_if_match(self, phone: str, challenge_id: str) -> bool: ...

    def increment_attempts(self, phone: str, challenge_id: str) -> int | None: ...

    def purge_expired(self, now: datetime) -> int: ...


class InMemoryChallengeStore:
    """Single-process store. Challenges are lost on restart and not shared
    between instances; use :class:`DatabaseChallengeStore` when running more
    than one worker."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._challenges: dict[str, Challenge] = {}

    def put(self, challenge: Challenge) -> None:
        with self._lock:
            self._challenges[challenge.phone] = challenge

    def get(self, phone: str) -> Challenge | None:
        with self._lock:
            return self._challenges.get(phone)

    def delete(self, phone: str) -> None:
        with self._lock:
            self._challenges.pop(phone, None)

    def delete_if_match(self, phone: str, challenge_id: str) -> bool:
        with self._lock:
            current = self._challenges.get(phone)
            if current is None or current.challenge_id != challenge_id:
                return False
            del self._challenges[phone]
            return True

    def increment_attempts(self, phone: str, challenge_id: str) -> int | None:
        with self._lock:
            current = self._challenges.get(phone)
            if current is None or current.challenge_id != challenge_id:
                return None
            updated = replace(current, attempts=current.attempts + 1)
            self._challenges[phone] = updated
            return updated.attempts

    def purge_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [phone for phone, item in self._challenges.items() if item.is_expired(now)]
            for phone in expired:
                del self._challenges[phone]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._challenges)


class DatabaseChallengeStore:
    """Store backed by the ``otp_challenges`` table, shared by all instances
    pointing at the same database. Conditional statements keep the per-phone
    operations atomic."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _to_challenge(row: OtpChallenge) -> Challenge:
        return Challenge(
            phone=row.phone,
            challenge_id=row.challenge_id,
            code_hash=row.code_hash,
            issued_at=row.issued_at,
            expires_at=row.expires_at,
            attempts=row.attempts,
        )

    def put(self, challenge: Challenge) -> None:
        values = {
            "phone": challenge.phone,
            "challenge_id": challenge.challenge_id,
            "code_hash": challenge.code_hash,
            "issued_at": challenge.issued_at,
            "expires_at": challenge.expires_at,
            "attempts": challenge.attempts,
        }
        with self._session_factory() as db:
            statement = _upsert_statement(db.get_bind().dialect.name, values)
            if statement is not None:
                db.execute(statement)
                db.commit()
                return
            try:
                self._replace(db, values)
            except IntegrityError:
                # A concurrent put inserted the same phone between our delete and insert.
                db.rollback()
                self._replace(db, values)

    @staticmethod
    def _replace(db: Session, values: dict) -> None:
        db.execute(delete(OtpChallenge).where(OtpChallenge.phone == values["phone"]))
        db.add(OtpChallenge(**values))
        db.commit()

    def get(self, phone: str) -> Challenge | None:
        with self._session_factory() as db:
            row = db.scalars(select(OtpChallenge).where(OtpChallenge.phone == phone)).first()
            return self._to_challenge(row) if row else None

    def delete(self, phone: str) -> None:
        with self._session_factory() as db:
            db.execute(delete(OtpChallenge).where(OtpChallenge.phone == phone))
            db.commit()

    def delete_if_match(self, phone: str, challenge_id: str) -> bool:
        with self._session_factory() as db:
            result = db.execute(
                delete(OtpChallenge).where(
                    OtpChallenge.phone == phone,
                    OtpChallenge.challenge_id == challenge_id,
                )
            )
            db.commit()
            return result.rowcount == 1

    def increment_attempts(self, phone: str, challenge_id: str) -> int | None:
        with self._session_factory() as db:
            result = db.execute(
                update(OtpChallenge)
                .where(OtpChallenge.phone == phone, OtpChallenge.challenge_id == challenge_id)
                .values(attempts=OtpChallenge.attempts + 1)
            )
            if result.rowcount != 1:
                db.rollback()
                return None
            attempts = db.scalar(
                select(OtpChallenge.attempts).where(
                    OtpChallenge.phone == phone,
                    OtpChallenge.challenge_id == challenge_id,
                )
            )
            db.commit()
            return attempts

    def purge_expired(self, now: datetime) -> int:
        with self._session_factory() as db:
            result = db.execute(delete(OtpChallenge).where(OtpChallenge.expires_at < now))
            db.commit()
            return result.rowcount or 0


def _upsert_statement(dialect_name: str, values: dict):
    """Single-statement insert-or-replace keyed on ``phone``, or ``None`` when
    the dialect has no ``ON CONFLICT`` support."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        return None
    statement = insert(OtpChallenge).values(**values)
    return statement.on_conflict_do_update(
        index_elements=[OtpChallenge.phone],
        set_={key: statement.excluded[key] for key in values if key != "phone"},
    )
