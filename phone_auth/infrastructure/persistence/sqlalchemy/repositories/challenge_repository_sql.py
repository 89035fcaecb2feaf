from datetime import datetime
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .....application.ports.challenge_repo import ChallengeRepository, ChallengeType, OtpChallenge
from .....core.utils import as_utc
from .....db.models import OtpChallengeRecord


class SqlChallengeRepository(ChallengeRepository):
    """Challenges keyed by phone; consume and record_failure are single conditional statements."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def _to_dto(self, rec: OtpChallengeRecord) -> OtpChallenge:
        return OtpChallenge(
            id=rec.id,
            phone=rec.phone,
            code_hash=rec.code_hash,
            challenge_type=ChallengeType(rec.challenge_type),
            created_at=as_utc(rec.created_at),
            expires_at=as_utc(rec.expires_at),
            attempts_remaining=rec.attempts_remaining,
        )

    def replace(self, challenge: OtpChallenge) -> None:
        # Two concurrent replaces for one phone race on the unique index; the loser retries
        for attempt in range(2):
            with Session(self.engine) as session:
                session.execute(delete(OtpChallengeRecord).where(OtpChallengeRecord.phone == challenge.phone))
                session.add(OtpChallengeRecord(
                    id=challenge.id,
                    phone=challenge.phone,
                    code_hash=challenge.code_hash,
                    challenge_type=challenge.challenge_type.value,
                    attempts_remaining=challenge.attempts_remaining,
                    expires_at=challenge.expires_at,
                    created_at=challenge.created_at,
                ))
                try:
                    session.commit()
                    return
                except IntegrityError:
                    session.rollback()
                    if attempt:
                        raise

    def get(self, phone: str) -> Optional[OtpChallenge]:
        with Session(self.engine) as session:
            rec = session.exec(select(OtpChallengeRecord).where(OtpChallengeRecord.phone == phone)).first()
            return self._to_dto(rec) if rec else None

    def consume(self, challenge_id: str) -> bool:
        with Session(self.engine) as session:
            result = session.execute(delete(OtpChallengeRecord).where(OtpChallengeRecord.id == challenge_id))
            session.commit()
            return result.rowcount == 1

    def record_failure(self, challenge_id: str) -> Optional[int]:
        with Session(self.engine) as session:
            session.execute(
                update(OtpChallengeRecord)
                .where(OtpChallengeRecord.id == challenge_id, OtpChallengeRecord.attempts_remaining > 0)
                .values(attempts_remaining=OtpChallengeRecord.attempts_remaining - 1)
            )
            session.commit()
            remaining = session.exec(
                select(OtpChallengeRecord.attempts_remaining).where(OtpChallengeRecord.id == challenge_id)
            ).first()
            return remaining

    def purge_expired(self, now: datetime) -> int:
        with Session(self.engine) as session:
            result = session.execute(delete(OtpChallengeRecord).where(OtpChallengeRecord.expires_at < now))
            session.commit()
            return result.rowcount
