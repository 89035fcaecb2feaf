import logging
from dataclasses import dataclass
from functools import partial
from typing import Dict, Optional, Union

from ..ports.account_repo import Account, RegistrationDetails
from ..ports.audit_logger import AuditLogger
from ..ports.challenge_repo import ChallengeType
from .account_resolver import AccountResolver, AccountStatus, AuthAction
from .otp_issuer import OtpIssuer
from .otp_store import ChallengeState, OtpStore
from .phone import PhoneNumber, normalize
from .token_service import AccountIdentity, TokenPair, TokenService
from ...exceptions import AuthError, TokenError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StartResult:
    action: AuthAction
    phone: PhoneNumber
    expires_in: int


@dataclass(frozen=True)
class AuthResult:
    tokens: TokenPair
    account: Account


@dataclass(frozen=True)
class AuthState:
    phone: PhoneNumber
    challenge: ChallengeState
    challenge_type: Optional[ChallengeType]
    attempts_remaining: Optional[int]
    account: AccountStatus


@dataclass
class AuthService:
    """The four operations the surrounding application calls.

    Nothing here is cached between calls: the login/register decision and
    the per-phone state are recomputed from the stores every time.
    """

    resolver: AccountResolver
    issuer: OtpIssuer
    otp_store: OtpStore
    tokens: TokenService
    audit: Optional[AuditLogger] = None

    def start_auth(self, raw_phone: str, registration_details: Optional[RegistrationDetails] = None, rate_limit_key: Optional[str] = None) -> StartResult:
        phone = normalize(raw_phone)
        try:
            action = self.resolver.begin_auth(phone, registration_details)
            on_stored = None
            if action == AuthAction.REGISTER:
                # details are bound to the challenge id, so they are staged only once it is written
                on_stored = partial(self.resolver.stage, phone, registration_details)
            # A failed send leaves the decision and the challenge in place, so
            # the caller can simply start again.
            issued = self.issuer.issue(phone, action, rate_limit_key, on_stored=on_stored)
        except AuthError as e:
            self._audit("otp_request", phone, ip_address=rate_limit_key, success=False, details={"reason": e.kind})
            raise

        self._audit("otp_request", phone, ip_address=rate_limit_key, details={"action": action.value, "challenge_id": issued.challenge.id})
        return StartResult(
            action=action,
            phone=phone,
            expires_in=int(self.otp_store.ttl.total_seconds()),
        )

    def verify_auth(self, raw_phone: str, code: str, expected_type: Union[ChallengeType, str]) -> AuthResult:
        phone = normalize(raw_phone)
        try:
            result = self.otp_store.verify(phone, code, expected_type)
            staged = self.resolver.take_staged(phone, result.challenge_id) if result.challenge_type == ChallengeType.REGISTER else None
            account = self.resolver.complete_auth(phone, result.challenge_type, staged)
            pair = self.tokens.issue(account)
        except AuthError as e:
            self._audit("otp_verify", phone, success=False, details={"reason": e.kind, "detail": e.detail})
            raise

        self._audit("otp_verify", phone, account_id=account.id, details={"challenge_type": result.challenge_type.value})
        return AuthResult(tokens=pair, account=account)

    def refresh_session(self, refresh_token: str) -> TokenPair:
        try:
            return self.tokens.rotate(refresh_token)
        except TokenError as e:
            logger.info(f"Refresh rejected: {e.kind} ({e.detail})")
            raise

    def logout(self, refresh_token: str) -> int:
        return self.tokens.revoke(refresh_token)

    def logout_everywhere(self, account_id: str) -> int:
        return self.tokens.revoke_account(account_id)

    def authenticate(self, access_token: str) -> AccountIdentity:
        return self.tokens.verify_access(access_token)

    def auth_state(self, raw_phone: str) -> AuthState:
        phone = normalize(raw_phone)
        status = self.otp_store.status(phone)
        return AuthState(
            phone=phone,
            challenge=status.state,
            challenge_type=status.challenge_type,
            attempts_remaining=status.attempts_remaining,
            account=self.resolver.resolve(phone),
        )

    def cleanup_expired(self) -> Dict[str, int]:
        counts = {
            "challenges": self.otp_store.purge_expired(),
            "staged_registrations": self.resolver.purge_expired(),
            "refresh_tokens": self.tokens.purge_expired(),
        }
        logger.info(f"Expired auth records purged: {counts}")
        return counts

    def _audit(self, action: str, phone: str, **kwargs) -> None:
        if self.audit is not None:
            self.audit.log(action, phone, **kwargs)
