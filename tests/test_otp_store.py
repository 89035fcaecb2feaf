from datetime import datetime, timedelta, timezone

import pytest

from phone_auth.application.ports.challenge_repo import ChallengeType
from phone_auth.application.services.otp_store import ChallengeState, OtpStore
from phone_auth.exceptions import (
    AttemptsExhausted, CodeMismatch, NoChallenge, OtpError, OtpExpired, TypeMismatch,
)
from phone_auth.infrastructure.persistence.memory.challenge_repository_memory import InMemoryChallengeRepository

PHONE = "+15551234567"


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_store(clock=None, **kwargs):
    return OtpStore(InMemoryChallengeRepository(), clock=clock or FakeClock(), **kwargs)


class InterleavingRepository(InMemoryChallengeRepository):
    """Runs ``after_get`` once, between the read and the caller acting on it."""

    def __init__(self):
        super().__init__()
        self.after_get = None

    def get(self, phone):
        challenge = super().get(phone)
        hook, self.after_get = self.after_get, None
        if hook is not None:
            hook(challenge)
        return challenge


def wrong_code(code):
    return "000000" if code != "000000" else "111111"


def test_generated_codes_have_configured_length():
    store = make_store(code_length=8)
    for _ in range(20):
        code = store.generate_code()
        assert len(code) == 8
        assert code.isdigit()


def test_code_is_stored_hashed():
    store = make_store()
    issued = store.put(PHONE, ChallengeType.LOGIN)
    assert issued.code not in issued.challenge.code_hash
    assert store.repo.get(PHONE).code_hash == issued.challenge.code_hash


def test_correct_code_verifies_once():
    store = make_store()
    issued = store.put(PHONE, ChallengeType.LOGIN)

    result = store.verify(PHONE, issued.code, ChallengeType.LOGIN)
    assert result.matched is True
    assert result.challenge_type == ChallengeType.LOGIN

    with pytest.raises(NoChallenge):
        store.verify(PHONE, issued.code, ChallengeType.LOGIN)


def test_new_challenge_replaces_previous():
    store = make_store()
    first = store.put(PHONE, ChallengeType.LOGIN)
    second = store.put(PHONE, ChallengeType.LOGIN)
    if first.code != second.code:
        with pytest.raises(CodeMismatch):
            store.verify(PHONE, first.code)
    assert store.verify(PHONE, second.code).matched


def test_wrong_code_decrements_attempts():
    store = make_store(max_attempts=5)
    issued = store.put(PHONE, ChallengeType.LOGIN)

    with pytest.raises(CodeMismatch) as exc:
        store.verify(PHONE, wrong_code(issued.code))
    assert not isinstance(exc.value, AttemptsExhausted)
    assert store.status(PHONE).attempts_remaining == 4


def test_exhausted_attempts_consume_challenge():
    store = make_store(max_attempts=5)
    issued = store.put(PHONE, ChallengeType.LOGIN)
    bad = wrong_code(issued.code)

    for _ in range(4):
        with pytest.raises(CodeMismatch):
            store.verify(PHONE, bad)
    with pytest.raises(AttemptsExhausted):
        store.verify(PHONE, bad)

    # Even the right code is useless now
    with pytest.raises(NoChallenge):
        store.verify(PHONE, issued.code)


def test_expired_challenge_is_rejected_and_removed():
    clock = FakeClock()
    store = make_store(clock=clock, ttl=timedelta(minutes=5))
    issued = store.put(PHONE, ChallengeType.LOGIN)

    clock.advance(minutes=5, seconds=1)
    assert store.status(PHONE).state == ChallengeState.EXPIRED
    with pytest.raises(OtpExpired):
        store.verify(PHONE, issued.code)
    with pytest.raises(NoChallenge):
        store.verify(PHONE, issued.code)


def test_challenge_valid_until_expiry():
    clock = FakeClock()
    store = make_store(clock=clock, ttl=timedelta(minutes=5))
    issued = store.put(PHONE, ChallengeType.REGISTER)
    clock.advance(minutes=5)
    assert store.verify(PHONE, issued.code).challenge_type == ChallengeType.REGISTER


def test_type_mismatch_leaves_challenge_intact():
    store = make_store()
    issued = store.put(PHONE, ChallengeType.REGISTER)

    with pytest.raises(TypeMismatch):
        store.verify(PHONE, issued.code, ChallengeType.LOGIN)
    assert store.status(PHONE).attempts_remaining == 5
    assert store.verify(PHONE, issued.code, "register").matched


def test_otp_failures_share_public_message():
    messages = {cls.message for cls in (NoChallenge, OtpExpired, CodeMismatch, AttemptsExhausted, TypeMismatch)}
    assert messages == {OtpError.message}


@pytest.mark.parametrize("code", ["", "12345", "1234567", "abcdef", None])
def test_malformed_codes_count_as_mismatch(code):
    store = make_store()
    store.put(PHONE, ChallengeType.LOGIN)
    with pytest.raises(CodeMismatch):
        store.verify(PHONE, code)


def test_status_without_challenge():
    store = make_store()
    status = store.status(PHONE)
    assert status.state == ChallengeState.NONE
    assert status.challenge_type is None


def test_purge_expired_removes_only_stale_challenges():
    clock = FakeClock()
    store = make_store(clock=clock, ttl=timedelta(minutes=5))
    store.put("+15550000001", ChallengeType.LOGIN)
    clock.advance(minutes=3)
    store.put("+15550000002", ChallengeType.LOGIN)
    clock.advance(minutes=3)

    assert store.purge_expired() == 1
    assert store.status("+15550000001").state == ChallengeState.NONE
    assert store.status("+15550000002").state == ChallengeState.PENDING


def test_challenge_consumed_between_read_and_consume():
    repo = InterleavingRepository()
    store = OtpStore(repo, clock=FakeClock())
    issued = store.put(PHONE, ChallengeType.LOGIN)
    # Another request verifies the same code first
    repo.after_get = lambda challenge: repo.consume(challenge.id)

    with pytest.raises(NoChallenge):
        store.verify(PHONE, issued.code, ChallengeType.LOGIN)


def test_challenge_replaced_during_verify_rejects_old_code():
    repo = InterleavingRepository()
    store = OtpStore(repo, clock=FakeClock())
    old = store.put(PHONE, ChallengeType.LOGIN)
    replacements = []
    repo.after_get = lambda challenge: replacements.append(store.put(PHONE, ChallengeType.LOGIN))

    with pytest.raises(NoChallenge):
        store.verify(PHONE, old.code, ChallengeType.LOGIN)

    # The replacement is untouched and still verifies
    new = replacements[0]
    assert store.status(PHONE).attempts_remaining == new.challenge.attempts_remaining
    assert store.verify(PHONE, new.code, ChallengeType.LOGIN).challenge_id == new.challenge.id
