from datetime import datetime
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.engine import Engine
from sqlmodel import Session

from .....application.ports.refresh_token_repo import RefreshTokenRecord, RefreshTokenRepository
from .....core.utils import as_utc
from .....db.models import RefreshTokenRow


class SqlRefreshTokenRepository(RefreshTokenRepository):
    def __init__(self, engine: Engine):
        self.engine = engine

    def _to_dto(self, row: RefreshTokenRow) -> RefreshTokenRecord:
        return RefreshTokenRecord(
            jti=row.jti,
            chain_id=row.chain_id,
            account_id=row.account_id,
            issued_at=as_utc(row.issued_at),
            expires_at=as_utc(row.expires_at),
            used_at=as_utc(row.used_at),
            revoked=bool(row.revoked),
            replaced_by=row.replaced_by,
        )

    def _to_row(self, record: RefreshTokenRecord) -> RefreshTokenRow:
        return RefreshTokenRow(
            jti=record.jti,
            chain_id=record.chain_id,
            account_id=record.account_id,
            issued_at=record.issued_at,
            expires_at=record.expires_at,
            used_at=record.used_at,
            revoked=record.revoked,
            replaced_by=record.replaced_by,
        )

    def add(self, record: RefreshTokenRecord) -> None:
        with Session(self.engine) as session:
            session.add(self._to_row(record))
            session.commit()

    def get(self, jti: str) -> Optional[RefreshTokenRecord]:
        with Session(self.engine) as session:
            row = session.get(RefreshTokenRow, jti)
            return self._to_dto(row) if row else None

    def rotate(self, old_jti: str, successor: RefreshTokenRecord, now: datetime) -> bool:
        with Session(self.engine) as session:
            result = session.execute(
                update(RefreshTokenRow)
                .where(
                    RefreshTokenRow.jti == old_jti,
                    RefreshTokenRow.used_at.is_(None),
                    RefreshTokenRow.revoked.is_(False),
                )
                .values(used_at=now, replaced_by=successor.jti)
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.add(self._to_row(successor))
            session.commit()
            return True

    def revoke_chain(self, chain_id: str) -> int:
        return self._revoke(RefreshTokenRow.chain_id == chain_id)

    def revoke_account(self, account_id: str) -> int:
        return self._revoke(RefreshTokenRow.account_id == account_id)

    def purge_expired(self, now: datetime) -> int:
        with Session(self.engine) as session:
            result = session.execute(delete(RefreshTokenRow).where(RefreshTokenRow.expires_at < now))
            session.commit()
            return result.rowcount

    def _revoke(self, condition) -> int:
        with Session(self.engine) as session:
            result = session.execute(
                update(RefreshTokenRow)
                .where(condition, RefreshTokenRow.revoked.is_(False))
                .values(revoked=True)
            )
            session.commit()
            return result.rowcount
