import json
from datetime import datetime
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.engine import Engine
from sqlmodel import Session

from .....application.ports.account_repo import RegistrationDetails
from .....application.ports.registration_staging import RegistrationStaging
from .....core.utils import as_utc
from .....db.models import PendingRegistration


class SqlRegistrationStaging(RegistrationStaging):
    def __init__(self, engine: Engine):
        self.engine = engine

    def stage(self, phone: str, details: RegistrationDetails, challenge_id: str, expires_at: datetime) -> None:
        with Session(self.engine) as session:
            session.merge(PendingRegistration(
                phone=phone,
                challenge_id=challenge_id,
                business_name=details.business_name,
                owner_name=details.owner_name,
                details_json=json.dumps(details.extra),
                expires_at=expires_at,
            ))
            session.commit()

    def take(self, phone: str, challenge_id: str, now: datetime) -> Optional[RegistrationDetails]:
        with Session(self.engine) as session:
            row = session.get(PendingRegistration, phone)
            if row is None or row.challenge_id != challenge_id:
                return None
            details = RegistrationDetails(
                business_name=row.business_name,
                owner_name=row.owner_name,
                extra=json.loads(row.details_json or "{}"),
            )
            expired = now > as_utc(row.expires_at)
            result = session.execute(
                delete(PendingRegistration).where(
                    PendingRegistration.phone == phone,
                    PendingRegistration.challenge_id == challenge_id,
                )
            )
            session.commit()
            # Only the caller that deleted the row gets the details
            if result.rowcount != 1 or expired:
                return None
            return details

    def purge_expired(self, now: datetime) -> int:
        with Session(self.engine) as session:
            result = session.execute(delete(PendingRegistration).where(PendingRegistration.expires_at < now))
            session.commit()
            return result.rowcount
