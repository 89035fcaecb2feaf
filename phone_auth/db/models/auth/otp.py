# phone_auth/db/models/auth/otp.py
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field
from datetime import datetime

from ....core.utils import utcnow


class OtpChallengeRecord(SQLModel, table=True):
    __tablename__ = "otp_challenges"
    id: str = Field(primary_key=True, max_length=36)
    # unique: one live challenge per phone
    phone: str = Field(max_length=16, unique=True, index=True)
    code_hash: str = Field(max_length=255)
    challenge_type: str = Field(max_length=10)
    attempts_remaining: int
    expires_at: datetime = Field(sa_type=DateTime(timezone=True), index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class PendingRegistration(SQLModel, table=True):
    __tablename__ = "pending_registrations"
    phone: str = Field(primary_key=True, max_length=16)
    # the challenge these details were sent with
    challenge_id: str = Field(max_length=36)
    business_name: str = Field(max_length=100)
    owner_name: str = Field(max_length=50)
    details_json: str = Field(default="{}")
    expires_at: datetime = Field(sa_type=DateTime(timezone=True), index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
