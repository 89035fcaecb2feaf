import calendar
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple

import jwt

from ..ports.account_repo import Account
from ..ports.refresh_token_repo import RefreshTokenRecord, RefreshTokenRepository
from ...core.utils import utcnow
from ...exceptions import TokenExpired, TokenMalformed, TokenReused, TokenRevoked, WrongTokenType

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_in: int
    token_type: str = "bearer"


@dataclass(frozen=True)
class AccountIdentity:
    account_id: str
    phone: Optional[str]
    expires_at: datetime


def _timestamp(value: datetime) -> int:
    return calendar.timegm(value.utctimetuple())


@dataclass
class TokenService:
    """Mints stateless access tokens and single-use, rotating refresh tokens.

    Access tokens are only checked for signature, type and expiry, so they
    stay valid until they expire even after a logout. Refresh tokens are
    backed by a record per ``jti``; every record belongs to a rotation chain
    that starts at login and can be revoked as a whole.
    """

    refresh_repo: RefreshTokenRepository
    secret_key: str
    algorithm: str = "HS256"
    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=7)
    issuer: str = "phone-auth-api"
    audience: str = "phone-auth-app"
    clock: Callable[[], datetime] = utcnow

    def issue(self, account: Account) -> TokenPair:
        """Start a new rotation chain for ``account``."""
        now = self.clock()
        pair, record = self._mint_pair(account.id, account.phone, str(uuid.uuid4()), now)
        self.refresh_repo.add(record)
        logger.info(f"Issued token pair for account {account.id}, chain {record.chain_id}")
        return pair

    def verify_access(self, token: str) -> AccountIdentity:
        claims = self._decode(token, ACCESS)
        return AccountIdentity(
            account_id=claims["sub"],
            phone=claims.get("phone"),
            expires_at=datetime.fromtimestamp(int(claims["exp"]), timezone.utc),
        )

    def rotate(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair in the same chain.

        Presenting a token that was already exchanged revokes the whole chain
        and raises TokenReused.
        """
        claims = self._decode(refresh_token, REFRESH)
        record = self.refresh_repo.get(claims["jti"])
        if record is None or record.account_id != claims["sub"]:
            raise TokenRevoked("Refresh token is not on record")
        if record.revoked:
            raise TokenRevoked(f"Chain {record.chain_id} is revoked")
        if record.used_at is not None:
            self._reject_reuse(record)

        now = self.clock()
        pair, successor = self._mint_pair(record.account_id, claims.get("phone"), record.chain_id, now)
        if not self.refresh_repo.rotate(record.jti, successor, now):
            # Another request exchanged or revoked this token first
            current = self.refresh_repo.get(record.jti)
            if current is None or current.revoked:
                raise TokenRevoked(f"Chain {record.chain_id} is revoked")
            self._reject_reuse(current)
        return pair

    def revoke(self, refresh_token: str) -> int:
        """Revoke the chain ``refresh_token`` belongs to. Expired tokens are accepted."""
        claims = self._decode(refresh_token, REFRESH, allow_expired=True)
        record = self.refresh_repo.get(claims["jti"])
        if record is None:
            return 0
        count = self.refresh_repo.revoke_chain(record.chain_id)
        logger.info(f"Revoked chain {record.chain_id} for account {record.account_id} ({count} tokens)")
        return count

    def revoke_account(self, account_id: str) -> int:
        count = self.refresh_repo.revoke_account(account_id)
        logger.info(f"Revoked all refresh tokens for account {account_id} ({count} tokens)")
        return count

    def purge_expired(self) -> int:
        return self.refresh_repo.purge_expired(self.clock())

    def _reject_reuse(self, record: RefreshTokenRecord) -> None:
        count = self.refresh_repo.revoke_chain(record.chain_id)
        logger.warning(
            f"Refresh token reuse detected for account {record.account_id}: "
            f"revoked chain {record.chain_id} ({count} tokens)"
        )
        raise TokenReused(f"Refresh token {record.jti} was already used")

    def _mint_pair(self, account_id: str, phone: Optional[str], chain_id: str, now: datetime) -> Tuple[TokenPair, RefreshTokenRecord]:
        access_token = self._encode({
            "sub": account_id,
            "phone": phone,
            "type": ACCESS,
            "jti": uuid.uuid4().hex,
        }, now, self.access_ttl)

        record = RefreshTokenRecord(
            jti=uuid.uuid4().hex,
            chain_id=chain_id,
            account_id=account_id,
            issued_at=now,
            expires_at=now + self.refresh_ttl,
        )
        refresh_token = self._encode({
            "sub": account_id,
            "phone": phone,
            "type": REFRESH,
            "jti": record.jti,
            "chain": chain_id,
        }, now, self.refresh_ttl)

        pair = TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(self.access_ttl.total_seconds()),
            refresh_expires_in=int(self.refresh_ttl.total_seconds()),
        )
        return pair, record

    def _encode(self, claims: Dict[str, Any], now: datetime, ttl: timedelta) -> str:
        to_encode = claims.copy()
        to_encode.update({
            "iat": _timestamp(now),
            "exp": _timestamp(now + ttl),
            "iss": self.issuer,
            "aud": self.audience,
        })
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def _decode(self, token: str, expected_type: str, allow_expired: bool = False) -> Dict[str, Any]:
        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                # expiry is checked below against the injected clock
                options={"verify_exp": False, "verify_iat": False, "require": ["sub", "type", "jti", "iat", "exp"]},
            )
        except jwt.InvalidTokenError as e:
            raise TokenMalformed(str(e)) from e

        if claims.get("type") != expected_type:
            raise WrongTokenType(f"Expected a {expected_type} token, got {claims.get('type')!r}")
        if not allow_expired and _timestamp(self.clock()) >= int(claims["exp"]):
            raise TokenExpired(f"{expected_type.capitalize()} token expired")
        return claims
