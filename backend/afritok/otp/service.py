import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from afritok.core.errors import (
    ChallengeExpired,
    ChallengeNotFound,
    CodeMismatch,
    InvalidPhoneFormat,
    MalformedCode,
    TooManyAttempts,
)
from afritok.core.phone import is_valid_phone, mask_phone, normalize_phone
from afritok.core.security import generate_challenge_id, generate_otp_code, hash_otp_code, verify_otp_code
from afritok.core.utils import utc_now_naive
from afritok.otp.store import Challenge, ChallengeStore

logger = logging.getLogger(__name__)

CODE_RE = re.compile(r"[0-9]{6}")


@dataclass(frozen=True)
class IssuedChallenge:
    phone: str
    code: str
    expires_at: datetime


def validate_phone(phone: str) -> str:
    normalized = normalize_phone(phone)
    if not is_valid_phone(normalized):
        raise InvalidPhoneFormat()
    return normalized


class OtpService:
    """Issues and verifies phone OTP challenges against a :class:`ChallengeStore`.

    A wrong code keeps the challenge alive until it expires or ``max_attempts``
    wrong codes have been submitted, whichever comes first.
    """

    def __init__(
        self,
        store: ChallengeStore,
        *,
        secret: str,
        ttl: timedelta = timedelta(minutes=10),
        max_attempts: int = 5,
        clock: Callable[[], datetime] = utc_now_naive,
    ) -> None:
        self.store = store
        self.ttl = ttl
        self.max_attempts = max_attempts
        self._secret = secret
        self._clock = clock

    def request_challenge(self, phone: str) -> IssuedChallenge:
        normalized = validate_phone(phone)
        now = self._clock()
        code = generate_otp_code()
        challenge_id = generate_challenge_id()
        challenge = Challenge(
            phone=normalized,
            challenge_id=challenge_id,
            code_hash=hash_otp_code(normalized, challenge_id, code, self._secret),
            issued_at=now,
            expires_at=now + self.ttl,
        )
        self.store.put(challenge)
        logger.info("OTP challenge issued phone=%s expires_at=%s", mask_phone(normalized), challenge.expires_at.isoformat())
        return IssuedChallenge(phone=normalized, code=code, expires_at=challenge.expires_at)

    def verify(self, phone: str, code: str) -> Challenge:
        normalized = validate_phone(phone)
        if not isinstance(code, str) or not CODE_RE.fullmatch(code):
            raise MalformedCode()

        challenge = self.store.get(normalized)
        if challenge is None:
            raise ChallengeNotFound()

        if challenge.is_expired(self._clock()):
            self.store.delete_if_match(normalized, challenge.challenge_id)
            raise ChallengeExpired()

        if challenge.attempts >= self.max_attempts:
            self.store.delete_if_match(normalized, challenge.challenge_id)
            raise TooManyAttempts()

        if not verify_otp_code(normalized, challenge.challenge_id, code, challenge.code_hash, self._secret):
            attempts = self.store.increment_attempts(normalized, challenge.challenge_id)
            if attempts is not None and attempts >= self.max_attempts:
                self.store.delete_if_match(normalized, challenge.challenge_id)
                raise TooManyAttempts()
            remaining = None if attempts is None else self.max_attempts - attempts
            raise CodeMismatch(details={"attempts_remaining": remaining})

        # Lost the race to a concurrent verify or a fresh request for this phone.
        if not self.store.delete_if_match(normalized, challenge.challenge_id):
            raise ChallengeNotFound()
        return challenge
