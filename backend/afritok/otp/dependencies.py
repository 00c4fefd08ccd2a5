from datetime import timedelta
from functools import lru_cache

from fastapi import Depends

from afritok.core.config import get_settings
from afritok.db.session import SessionLocal
from afritok.otp.service import OtpService
from afritok.otp.sms import SmsSender, build_sms_sender
from afritok.otp.store import ChallengeStore, DatabaseChallengeStore, InMemoryChallengeStore


@lru_cache(maxsize=1)
def get_challenge_store() -> ChallengeStore:
    if get_settings().otp_store_backend == "database":
        return DatabaseChallengeStore(SessionLocal)
    return InMemoryChallengeStore()


@lru_cache(maxsize=1)
def get_sms_sender() -> SmsSender:
    return build_sms_sender(get_settings())


def get_otp_service(store: ChallengeStore = Depends(get_challenge_store)) -> OtpService:
    settings = get_settings()
    return OtpService(
        store,
        secret=settings.secret_key,
        ttl=timedelta(minutes=settings.otp_ttl_minutes),
        max_attempts=settings.otp_max_attempts,
    )
