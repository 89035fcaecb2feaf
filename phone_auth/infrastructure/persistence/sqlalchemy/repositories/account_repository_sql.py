import json
from typing import Optional

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .....application.ports.account_repo import Account, AccountRepository, RegistrationDetails
from .....core.utils import as_utc, utcnow
from .....db.models import AccountRow
from .....exceptions import AccountAlreadyExists


class SqlAccountRepository(AccountRepository):
    def __init__(self, engine: Engine):
        self.engine = engine

    def _to_dto(self, row: AccountRow) -> Account:
        return Account(
            id=row.id,
            phone=row.phone,
            is_verified=bool(row.is_verified),
            is_active=bool(row.is_active),
            created_at=as_utc(row.created_at),
            profile_ref=row.id,
            business_name=row.business_name,
            owner_name=row.owner_name,
            profile=json.loads(row.profile_json or "{}"),
        )

    def account_exists(self, phone: str) -> bool:
        with Session(self.engine) as session:
            return session.exec(select(AccountRow.id).where(AccountRow.phone == phone)).first() is not None

    def get_by_phone(self, phone: str) -> Optional[Account]:
        with Session(self.engine) as session:
            row = session.exec(select(AccountRow).where(AccountRow.phone == phone)).first()
            return self._to_dto(row) if row else None

    def get_by_id(self, account_id: str) -> Optional[Account]:
        with Session(self.engine) as session:
            row = session.get(AccountRow, account_id)
            return self._to_dto(row) if row else None

    def create_account(self, phone: str, details: RegistrationDetails, verified: bool = False) -> Account:
        now = utcnow()
        row = AccountRow(
            phone=phone,
            business_name=details.business_name,
            owner_name=details.owner_name,
            profile_json=json.dumps(details.extra),
            is_verified=verified,
            verified_at=now if verified else None,
            created_at=now,
            updated_at=now,
        )
        with Session(self.engine) as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise AccountAlreadyExists(f"Account already exists for {phone}") from e
            session.refresh(row)
            return self._to_dto(row)

    def mark_verified(self, account_id: str) -> None:
        now = utcnow()
        self._update(account_id, is_verified=True, verified_at=now, updated_at=now)

    def set_active(self, account_id: str, active: bool) -> None:
        self._update(account_id, is_active=active, updated_at=utcnow())

    def _update(self, account_id: str, **values) -> None:
        with Session(self.engine) as session:
            session.execute(update(AccountRow).where(AccountRow.id == account_id).values(**values))
            session.commit()
