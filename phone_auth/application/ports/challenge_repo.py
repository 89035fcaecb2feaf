from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol


class ChallengeType(str, Enum):
    REGISTER = "register"
    LOGIN = "login"


@dataclass(frozen=True)
class OtpChallenge:
    id: str
    phone: str
    code_hash: str
    challenge_type: ChallengeType
    created_at: datetime
    expires_at: datetime
    attempts_remaining: int

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class ChallengeRepository(Protocol):
    def replace(self, challenge: OtpChallenge) -> None:
        """Store ``challenge`` as the only challenge for its phone."""
        ...

    def get(self, phone: str) -> Optional[OtpChallenge]:
        ...

    def consume(self, challenge_id: str) -> bool:
        """Delete the challenge; True only for the caller that deleted it."""
        ...

    def record_failure(self, challenge_id: str) -> Optional[int]:
        """Decrement attempts; remaining count, or None if already gone."""
        ...

    def purge_expired(self, now: datetime) -> int:
        ...
