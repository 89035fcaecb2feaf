from datetime import datetime, timedelta, timezone

import pytest

from phone_auth.application.ports.account_repo import RegistrationDetails
from phone_auth.application.ports.challenge_repo import ChallengeType, OtpChallenge
from phone_auth.application.services.account_resolver import AccountResolver, AuthAction
from phone_auth.exceptions import (
    AccountAlreadyExists, AccountDisabled, AccountNotFound, RegistrationDetailsRequired,
)
from phone_auth.infrastructure.persistence.memory.account_repository_memory import InMemoryAccountRepository
from phone_auth.infrastructure.persistence.memory.registration_staging_memory import InMemoryRegistrationStaging

PHONE = "+15551234567"
DETAILS = RegistrationDetails(business_name="Acme Tacos", owner_name="Sam")


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


def make_challenge(challenge_id="challenge-1", expires_in=timedelta(minutes=5)):
    created_at = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    return OtpChallenge(
        id=challenge_id,
        phone=PHONE,
        code_hash="unused",
        challenge_type=ChallengeType.REGISTER,
        created_at=created_at,
        expires_at=created_at + expires_in,
        attempts_remaining=5,
    )


def make_resolver(clock=None):
    return AccountResolver(
        InMemoryAccountRepository(),
        InMemoryRegistrationStaging(),
        clock=clock or FakeClock(),
    )


def test_unknown_number_with_details_registers():
    resolver = make_resolver()
    assert resolver.begin_auth(PHONE, DETAILS) == AuthAction.REGISTER
    # Nothing is created or staged until a challenge exists
    assert resolver.resolve(PHONE).exists is False
    assert resolver.take_staged(PHONE, "challenge-1") is None


def test_unknown_number_without_details_is_rejected():
    resolver = make_resolver()
    with pytest.raises(RegistrationDetailsRequired):
        resolver.begin_auth(PHONE)
    with pytest.raises(RegistrationDetailsRequired):
        resolver.begin_auth(PHONE, RegistrationDetails(business_name="  ", owner_name="Sam"))


def test_existing_number_logs_in_and_ignores_details():
    resolver = make_resolver()
    resolver.accounts.create_account(PHONE, DETAILS)
    other = RegistrationDetails(business_name="Other", owner_name="Someone")
    assert resolver.begin_auth(PHONE, other) == AuthAction.LOGIN
    assert resolver.take_staged(PHONE, "challenge-1") is None


def test_complete_register_creates_verified_account():
    resolver = make_resolver()
    details = RegistrationDetails(business_name=" Acme Tacos ", owner_name="Sam")
    resolver.begin_auth(PHONE, details)
    resolver.stage(PHONE, details, make_challenge())
    staged = resolver.take_staged(PHONE, "challenge-1")
    assert staged.business_name == "Acme Tacos"

    account = resolver.complete_auth(PHONE, ChallengeType.REGISTER, staged)
    assert account.is_verified is True
    assert account.phone == PHONE
    assert resolver.resolve(PHONE).verified is True


def test_complete_register_twice_fails():
    resolver = make_resolver()
    resolver.complete_auth(PHONE, ChallengeType.REGISTER, DETAILS)
    with pytest.raises(AccountAlreadyExists):
        resolver.complete_auth(PHONE, ChallengeType.REGISTER, DETAILS)


def test_complete_register_without_staged_details_fails():
    resolver = make_resolver()
    with pytest.raises(RegistrationDetailsRequired):
        resolver.complete_auth(PHONE, ChallengeType.REGISTER, None)
    assert resolver.resolve(PHONE).exists is False


def test_staged_details_expire_with_the_challenge():
    clock = FakeClock()
    resolver = make_resolver(clock)
    resolver.stage(PHONE, DETAILS, make_challenge(expires_in=timedelta(minutes=2)))
    clock.now += timedelta(minutes=3)
    assert resolver.take_staged(PHONE, "challenge-1") is None


def test_staged_details_belong_to_one_challenge():
    resolver = make_resolver()
    resolver.stage(PHONE, DETAILS, make_challenge("challenge-1"))
    resolver.stage(PHONE, RegistrationDetails(business_name="Other Co", owner_name="Pat"), make_challenge("challenge-2"))

    # Superseded by challenge-2, and a miss does not discard challenge-2's details
    assert resolver.take_staged(PHONE, "challenge-1") is None
    staged = resolver.take_staged(PHONE, "challenge-2")
    assert staged.business_name == "Other Co"
    assert resolver.take_staged(PHONE, "challenge-2") is None


def test_stage_rejects_blank_details():
    resolver = make_resolver()
    with pytest.raises(RegistrationDetailsRequired):
        resolver.stage(PHONE, RegistrationDetails(business_name="Acme", owner_name=" "), make_challenge())


def test_complete_login_marks_unverified_account_verified():
    resolver = make_resolver()
    created = resolver.accounts.create_account(PHONE, DETAILS, verified=False)
    account = resolver.complete_auth(PHONE, ChallengeType.LOGIN)
    assert account.id == created.id
    assert account.is_verified is True
    assert resolver.accounts.get_by_id(created.id).is_verified is True


def test_complete_login_for_missing_account_fails():
    resolver = make_resolver()
    with pytest.raises(AccountNotFound):
        resolver.complete_auth(PHONE, ChallengeType.LOGIN)


def test_deactivated_account_cannot_authenticate():
    resolver = make_resolver()
    account = resolver.accounts.create_account(PHONE, DETAILS, verified=True)
    resolver.accounts.set_active(account.id, False)
    with pytest.raises(AccountDisabled):
        resolver.begin_auth(PHONE)
    with pytest.raises(AccountDisabled):
        resolver.complete_auth(PHONE, ChallengeType.LOGIN)


def test_registered_account_keeps_full_profile():
    resolver = make_resolver()
    details = RegistrationDetails(business_name="Acme Tacos", owner_name="Sam", extra={"city": "Austin"})
    account = resolver.complete_auth(PHONE, ChallengeType.REGISTER, details)
    assert account.owner_name == "Sam"
    assert account.profile == {"city": "Austin"}
    assert resolver.accounts.get_by_phone(PHONE).profile == {"city": "Austin"}
