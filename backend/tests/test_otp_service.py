from datetime import timedelta

import pytest

from afritok.core.errors import (
    ChallengeExpired,
    ChallengeNotFound,
    CodeMismatch,
    InvalidPhoneFormat,
    MalformedCode,
    TooManyAttempts,
)
from afritok.otp.service import OtpService
from afritok.otp.store import InMemoryChallengeStore

from conftest import FakeClock

PHONE = "+15551234567"


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def service(challenge_store, clock):
    return OtpService(
        challenge_store,
        secret="unit-test-secret",
        ttl=timedelta(minutes=10),
        max_attempts=5,
        clock=clock,
    )


def _wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


def test_request_stores_six_digit_code(service, challenge_store, clock):
    issued = service.request_challenge("+1 555 123 4567")

    assert issued.phone == PHONE
    assert len(issued.code) == 6 and issued.code.isdigit()
    assert 100000 <= int(issued.code) <= 999999
    assert issued.expires_at == clock.now + timedelta(minutes=10)

    stored = challenge_store.get(PHONE)
    assert stored is not None
    assert stored.code_hash != issued.code
    assert len(stored.code_hash) == 64
    assert len(challenge_store) == 1


def test_request_rejects_malformed_phone_without_side_effect(service, challenge_store):
    with pytest.raises(InvalidPhoneFormat):
        service.request_challenge("12345")
    assert len(challenge_store) == 0


def test_verify_succeeds_exactly_once(service):
    issued = service.request_challenge(PHONE)

    challenge = service.verify(PHONE, issued.code)
    assert challenge.phone == PHONE

    with pytest.raises(ChallengeNotFound):
        service.verify(PHONE, issued.code)


def test_verify_without_request_fails(service):
    with pytest.raises(ChallengeNotFound):
        service.verify(PHONE, "123456")


@pytest.mark.parametrize("code", ["12345", "1234567", "12a456", "", " 12345", "１２３４５６"])
def test_malformed_code_does_not_touch_store(service, challenge_store, code):
    service.request_challenge(PHONE)

    with pytest.raises(MalformedCode):
        service.verify(PHONE, code)
    assert challenge_store.get(PHONE).attempts == 0


def test_correct_code_after_ttl_is_expired_not_mismatch(service, challenge_store, clock):
    issued = service.request_challenge(PHONE)
    clock.advance(minutes=10, seconds=1)

    with pytest.raises(ChallengeExpired):
        service.verify(PHONE, issued.code)
    assert challenge_store.get(PHONE) is None


def test_code_is_still_valid_at_the_deadline(service, clock):
    issued = service.request_challenge(PHONE)
    clock.advance(minutes=10)

    assert service.verify(PHONE, issued.code).phone == PHONE


def test_wrong_code_keeps_challenge_and_expiry(service, challenge_store):
    issued = service.request_challenge(PHONE)
    before = challenge_store.get(PHONE)

    with pytest.raises(CodeMismatch) as exc_info:
        service.verify(PHONE, _wrong(issued.code))
    assert exc_info.value.details == {"attempts_remaining": 4}

    after = challenge_store.get(PHONE)
    assert after is not None
    assert after.expires_at == before.expires_at
    assert after.attempts == 1
    assert service.verify(PHONE, issued.code).phone == PHONE


def test_attempt_cap_consumes_challenge(service, challenge_store):
    issued = service.request_challenge(PHONE)
    wrong = _wrong(issued.code)

    for _ in range(4):
        with pytest.raises(CodeMismatch):
            service.verify(PHONE, wrong)
    with pytest.raises(TooManyAttempts):
        service.verify(PHONE, wrong)

    assert challenge_store.get(PHONE) is None
    with pytest.raises(ChallengeNotFound):
        service.verify(PHONE, issued.code)


def test_new_request_invalidates_previous_code(service):
    first = service.request_challenge(PHONE)
    second = service.request_challenge(PHONE)

    if first.code != second.code:
        with pytest.raises(CodeMismatch):
            service.verify(PHONE, first.code)
    assert service.verify(PHONE, second.code).phone == PHONE


def test_same_code_from_older_challenge_does_not_verify(challenge_store, clock, monkeypatch):
    codes = iter(["424242", "424242"])
    monkeypatch.setattr("afritok.otp.service.generate_otp_code", lambda: next(codes))
    service = OtpService(challenge_store, secret="unit-test-secret", clock=clock)

    service.request_challenge(PHONE)
    stale = challenge_store.get(PHONE)
    service.request_challenge(PHONE)

    # A verify that read the stale challenge must not consume the new one.
    assert challenge_store.delete_if_match(PHONE, stale.challenge_id) is False
    assert service.verify(PHONE, "424242").challenge_id != stale.challenge_id


def test_verify_lost_race_reports_not_found(clock):
    class RacingStore(InMemoryChallengeStore):
        def delete_if_match(self, phone, challenge_id):
            return False

    store = RacingStore()
    service = OtpService(store, secret="unit-test-secret", clock=clock)
    issued = service.request_challenge(PHONE)

    with pytest.raises(ChallengeNotFound):
        service.verify(PHONE, issued.code)


def test_verify_rejects_malformed_phone(service):
    with pytest.raises(InvalidPhoneFormat):
        service.verify("not-a-phone", "123456")
