import dataclasses
import threading
from datetime import datetime
from typing import Dict, Optional

from ....application.ports.refresh_token_repo import RefreshTokenRecord, RefreshTokenRepository


class InMemoryRefreshTokenRepository(RefreshTokenRepository):
    def __init__(self) -> None:
        self._records: Dict[str, RefreshTokenRecord] = {}
        self._lock = threading.Lock()

    def add(self, record: RefreshTokenRecord) -> None:
        with self._lock:
            self._records[record.jti] = dataclasses.replace(record)

    def get(self, jti: str) -> Optional[RefreshTokenRecord]:
        with self._lock:
            record = self._records.get(jti)
            return dataclasses.replace(record) if record else None

    def rotate(self, old_jti: str, successor: RefreshTokenRecord, now: datetime) -> bool:
        with self._lock:
            old = self._records.get(old_jti)
            if old is None or old.used_at is not None or old.revoked:
                return False
            old.used_at = now
            old.replaced_by = successor.jti
            self._records[successor.jti] = dataclasses.replace(successor)
            return True

    def revoke_chain(self, chain_id: str) -> int:
        return self._revoke_where(lambda r: r.chain_id == chain_id)

    def revoke_account(self, account_id: str) -> int:
        return self._revoke_where(lambda r: r.account_id == account_id)

    def purge_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [jti for jti, r in self._records.items() if now > r.expires_at]
            for jti in expired:
                del self._records[jti]
            return len(expired)

    def _revoke_where(self, predicate) -> int:
        count = 0
        with self._lock:
            for record in self._records.values():
                if predicate(record) and not record.revoked:
                    record.revoked = True
                    count += 1
        return count
