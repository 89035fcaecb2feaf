from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol


@dataclass
class RefreshTokenRecord:
    jti: str
    chain_id: str
    account_id: str
    issued_at: datetime
    expires_at: datetime
    used_at: Optional[datetime] = None
    revoked: bool = False
    replaced_by: Optional[str] = None


class RefreshTokenRepository(Protocol):
    def add(self, record: RefreshTokenRecord) -> None:
        ...

    def get(self, jti: str) -> Optional[RefreshTokenRecord]:
        ...

    def rotate(self, old_jti: str, successor: RefreshTokenRecord, now: datetime) -> bool:
        """Mark ``old_jti`` used and store ``successor`` in one step.

        Returns False, storing nothing, if the old record was already used
        or revoked.
        """
        ...

    def revoke_chain(self, chain_id: str) -> int:
        ...

    def revoke_account(self, account_id: str) -> int:
        ...

    def purge_expired(self, now: datetime) -> int:
        ...
