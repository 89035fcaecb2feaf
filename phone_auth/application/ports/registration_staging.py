from datetime import datetime
from typing import Optional, Protocol

from .account_repo import RegistrationDetails


class RegistrationStaging(Protocol):
    def stage(self, phone: str, details: RegistrationDetails, challenge_id: str, expires_at: datetime) -> None:
        """Hold ``details`` for the challenge ``challenge_id``, replacing anything staged for ``phone``."""
        ...

    def take(self, phone: str, challenge_id: str, now: datetime) -> Optional[RegistrationDetails]:
        """Pop the staged details if they belong to ``challenge_id`` and have not expired."""
        ...

    def purge_expired(self, now: datetime) -> int:
        ...
