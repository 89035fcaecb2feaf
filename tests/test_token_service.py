from datetime import datetime, timedelta, timezone

import jwt
import pytest

from phone_auth.application.ports.account_repo import Account
from phone_auth.application.services.token_service import TokenService
from phone_auth.exceptions import (
    TokenError, TokenExpired, TokenMalformed, TokenReused, TokenRevoked, WrongTokenType,
)
from phone_auth.infrastructure.persistence.memory.refresh_token_repository_memory import InMemoryRefreshTokenRepository

SECRET = "test-secret-key-with-at-least-32-bytes!"


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_account(account_id="acct-1", phone="+15551234567"):
    return Account(id=account_id, phone=phone, is_verified=True, is_active=True, created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))


def make_service(clock=None):
    return TokenService(
        InMemoryRefreshTokenRepository(),
        SECRET,
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
        clock=clock or FakeClock(),
    )


def test_issue_returns_verifiable_pair():
    svc = make_service()
    pair = svc.issue(make_account())
    assert pair.token_type == "bearer"
    assert pair.expires_in == 900
    assert pair.refresh_expires_in == 7 * 86400

    identity = svc.verify_access(pair.access_token)
    assert identity.account_id == "acct-1"
    assert identity.phone == "+15551234567"
    assert identity.expires_at == datetime(2024, 1, 1, 12, 15, 0, tzinfo=timezone.utc)


def test_claims_carry_type_issuer_and_audience():
    svc = make_service()
    pair = svc.issue(make_account())
    claims = jwt.decode(pair.refresh_token, options={"verify_signature": False})
    assert claims["type"] == "refresh"
    assert claims["iss"] == "phone-auth-api"
    assert claims["aud"] == "phone-auth-app"
    assert claims["chain"]
    assert svc.refresh_repo.get(claims["jti"]) is not None


def test_access_token_expires():
    clock = FakeClock()
    svc = make_service(clock)
    pair = svc.issue(make_account())
    clock.advance(minutes=15)
    with pytest.raises(TokenExpired):
        svc.verify_access(pair.access_token)


def test_token_types_are_not_interchangeable():
    svc = make_service()
    pair = svc.issue(make_account())
    with pytest.raises(WrongTokenType):
        svc.verify_access(pair.refresh_token)
    with pytest.raises(WrongTokenType):
        svc.rotate(pair.access_token)


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
def test_garbage_tokens_are_malformed(token):
    svc = make_service()
    with pytest.raises(TokenMalformed):
        svc.verify_access(token)


def test_token_signed_with_other_key_is_malformed():
    svc = make_service()
    other = TokenService(InMemoryRefreshTokenRepository(), "another-secret-key-of-at-least-32-bytes", clock=svc.clock)
    pair = other.issue(make_account())
    with pytest.raises(TokenMalformed):
        svc.verify_access(pair.access_token)


def test_rotate_issues_new_pair_in_same_chain():
    svc = make_service()
    first = svc.issue(make_account())
    second = svc.rotate(first.refresh_token)

    assert second.refresh_token != first.refresh_token
    old = jwt.decode(first.refresh_token, options={"verify_signature": False})
    new = jwt.decode(second.refresh_token, options={"verify_signature": False})
    assert old["chain"] == new["chain"]
    assert svc.refresh_repo.get(old["jti"]).replaced_by == new["jti"]
    assert svc.verify_access(second.access_token).account_id == "acct-1"


def test_reuse_revokes_chain():
    svc = make_service()
    first = svc.issue(make_account())
    second = svc.rotate(first.refresh_token)

    with pytest.raises(TokenReused):
        svc.rotate(first.refresh_token)
    # The legitimate successor is dead too
    with pytest.raises(TokenRevoked):
        svc.rotate(second.refresh_token)
    with pytest.raises(TokenRevoked):
        svc.rotate(first.refresh_token)


def test_reuse_leaves_other_chains_alone():
    svc = make_service()
    account = make_account()
    phone_session = svc.issue(account)
    laptop_session = svc.issue(account)

    svc.rotate(phone_session.refresh_token)
    with pytest.raises(TokenReused):
        svc.rotate(phone_session.refresh_token)
    assert svc.rotate(laptop_session.refresh_token).refresh_token


def test_expired_refresh_token_is_rejected():
    clock = FakeClock()
    svc = make_service(clock)
    pair = svc.issue(make_account())
    clock.advance(days=7)
    with pytest.raises(TokenExpired):
        svc.rotate(pair.refresh_token)


def test_unknown_refresh_token_is_revoked():
    svc = make_service()
    pair = svc.issue(make_account())
    # A fresh repository has never seen the jti
    stranger = TokenService(InMemoryRefreshTokenRepository(), SECRET, clock=svc.clock)
    with pytest.raises(TokenRevoked):
        stranger.rotate(pair.refresh_token)


def test_revoke_kills_chain_even_when_expired():
    clock = FakeClock()
    svc = make_service(clock)
    pair = svc.issue(make_account())
    rotated = svc.rotate(pair.refresh_token)

    assert svc.revoke(pair.refresh_token) == 2
    with pytest.raises(TokenRevoked):
        svc.rotate(rotated.refresh_token)

    late = svc.issue(make_account())
    clock.advance(days=8)
    assert svc.revoke(late.refresh_token) == 1


def test_access_token_survives_logout_until_expiry():
    svc = make_service()
    pair = svc.issue(make_account())
    svc.revoke(pair.refresh_token)
    assert svc.verify_access(pair.access_token).account_id == "acct-1"


def test_revoke_account_covers_all_chains():
    svc = make_service()
    a = svc.issue(make_account())
    b = svc.issue(make_account())
    other = svc.issue(make_account("acct-2", "+15557654321"))

    assert svc.revoke_account("acct-1") == 2
    for pair in (a, b):
        with pytest.raises(TokenRevoked):
            svc.rotate(pair.refresh_token)
    svc.rotate(other.refresh_token)


def test_lost_rotation_race_counts_as_reuse():
    svc = make_service()
    pair = svc.issue(make_account())
    claims = jwt.decode(pair.refresh_token, options={"verify_signature": False})

    # Simulate a concurrent exchange landing between the read and the rotate
    original_get = svc.refresh_repo.get
    calls = []

    def get_then_race(jti):
        record = original_get(jti)
        if not calls:
            calls.append(jti)
            svc.refresh_repo.rotate(jti, svc._mint_pair("acct-1", None, record.chain_id, svc.clock())[1], svc.clock())
        return record

    svc.refresh_repo.get = get_then_race
    with pytest.raises(TokenReused):
        svc.rotate(pair.refresh_token)
    svc.refresh_repo.get = original_get
    assert svc.refresh_repo.get(claims["jti"]).revoked is True


def test_all_token_errors_share_public_message():
    kinds = (TokenExpired, TokenMalformed, WrongTokenType, TokenRevoked, TokenReused)
    assert {k.message for k in kinds} == {TokenError.message}
    assert {k.status_code for k in kinds} == {401}
