import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional, Union

from passlib.context import CryptContext

from ..ports.challenge_repo import ChallengeRepository, ChallengeType, OtpChallenge
from ...core.utils import mask_phone_number, utcnow
from ...exceptions import AttemptsExhausted, CodeMismatch, NoChallenge, OtpExpired, TypeMismatch

logger = logging.getLogger(__name__)

# Salted, slow hash; passlib's verify compares digests in constant time
otp_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class ChallengeState(str, Enum):
    NONE = "none"
    PENDING = "pending"
    EXPIRED = "expired"


@dataclass(frozen=True)
class IssuedChallenge:
    challenge: OtpChallenge
    code: str


@dataclass(frozen=True)
class VerifyResult:
    matched: bool
    challenge_type: ChallengeType
    challenge_id: str


@dataclass(frozen=True)
class ChallengeStatus:
    state: ChallengeState
    challenge_type: Optional[ChallengeType] = None
    attempts_remaining: Optional[int] = None
    expires_at: Optional[datetime] = None


@dataclass
class OtpStore:
    """Holds at most one pending OTP challenge per phone number."""

    repo: ChallengeRepository
    code_length: int = 6
    ttl: timedelta = timedelta(minutes=5)
    max_attempts: int = 5
    clock: Callable[[], datetime] = utcnow
    hasher: CryptContext = field(default=otp_context)

    def generate_code(self) -> str:
        return f"{secrets.randbelow(10 ** self.code_length):0{self.code_length}d}"

    def put(self, phone: str, challenge_type: Union[ChallengeType, str]) -> IssuedChallenge:
        """Create a fresh challenge, discarding whatever was pending for ``phone``."""
        code = self.generate_code()
        now = self.clock()
        challenge = OtpChallenge(
            id=str(uuid.uuid4()),
            phone=str(phone),
            code_hash=self.hasher.hash(code),
            challenge_type=ChallengeType(challenge_type),
            created_at=now,
            expires_at=now + self.ttl,
            attempts_remaining=self.max_attempts,
        )
        self.repo.replace(challenge)
        logger.info(f"OTP challenge {challenge.id} ({challenge.challenge_type.value}) stored for {mask_phone_number(challenge.phone)}")
        return IssuedChallenge(challenge=challenge, code=code)

    def verify(self, phone: str, code: str, expected_type: Optional[Union[ChallengeType, str]] = None) -> VerifyResult:
        """Check ``code`` against the pending challenge.

        Raises NoChallenge, OtpExpired, TypeMismatch, CodeMismatch or
        AttemptsExhausted. Expired and exhausted challenges are deleted; a
        matching code deletes the challenge so it can only succeed once.
        """
        challenge = self.repo.get(str(phone))
        if challenge is None:
            raise NoChallenge("No pending challenge")

        if challenge.is_expired(self.clock()):
            self.repo.consume(challenge.id)
            raise OtpExpired(f"Challenge {challenge.id} expired at {challenge.expires_at.isoformat()}")

        if expected_type is not None and challenge.challenge_type != ChallengeType(expected_type):
            raise TypeMismatch(f"Challenge {challenge.id} is a {challenge.challenge_type.value} challenge")

        if not self._matches(code, challenge.code_hash):
            remaining = self.repo.record_failure(challenge.id)
            if remaining is None:
                raise NoChallenge("Challenge was consumed concurrently")
            if remaining <= 0:
                self.repo.consume(challenge.id)
                raise AttemptsExhausted(f"Challenge {challenge.id} ran out of attempts")
            raise CodeMismatch(f"Wrong code for challenge {challenge.id}, {remaining} attempts left")

        if not self.repo.consume(challenge.id):
            raise NoChallenge("Challenge was consumed concurrently")
        return VerifyResult(matched=True, challenge_type=challenge.challenge_type, challenge_id=challenge.id)

    def status(self, phone: str) -> ChallengeStatus:
        challenge = self.repo.get(str(phone))
        if challenge is None:
            return ChallengeStatus(state=ChallengeState.NONE)
        state = ChallengeState.EXPIRED if challenge.is_expired(self.clock()) else ChallengeState.PENDING
        return ChallengeStatus(
            state=state,
            challenge_type=challenge.challenge_type,
            attempts_remaining=challenge.attempts_remaining,
            expires_at=challenge.expires_at,
        )

    def purge_expired(self) -> int:
        return self.repo.purge_expired(self.clock())

    def _matches(self, code: str, code_hash: str) -> bool:
        if not isinstance(code, str) or len(code) != self.code_length or not code.isdigit():
            return False
        return self.hasher.verify(code, code_hash)
