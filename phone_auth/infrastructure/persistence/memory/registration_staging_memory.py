import threading
from datetime import datetime
from typing import Dict, Optional, Tuple

from ....application.ports.account_repo import RegistrationDetails
from ....application.ports.registration_staging import RegistrationStaging


class InMemoryRegistrationStaging(RegistrationStaging):
    def __init__(self) -> None:
        self._staged: Dict[str, Tuple[RegistrationDetails, str, datetime]] = {}
        self._lock = threading.Lock()

    def stage(self, phone: str, details: RegistrationDetails, challenge_id: str, expires_at: datetime) -> None:
        with self._lock:
            self._staged[phone] = (details, challenge_id, expires_at)

    def take(self, phone: str, challenge_id: str, now: datetime) -> Optional[RegistrationDetails]:
        with self._lock:
            entry = self._staged.get(phone)
            if entry is None or entry[1] != challenge_id:
                return None
            del self._staged[phone]
        details, _, expires_at = entry
        return details if now <= expires_at else None

    def purge_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [phone for phone, (_, _, expires_at) in self._staged.items() if now > expires_at]
            for phone in expired:
                del self._staged[phone]
            return len(expired)
