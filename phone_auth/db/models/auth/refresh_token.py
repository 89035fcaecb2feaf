# phone_auth/db/models/auth/refresh_token.py
from typing import Optional
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field
from datetime import datetime


class RefreshTokenRow(SQLModel, table=True):
    __tablename__ = "refresh_tokens"
    jti: str = Field(primary_key=True, max_length=64)
    chain_id: str = Field(max_length=36, index=True)
    account_id: str = Field(foreign_key="accounts.id", index=True)
    issued_at: datetime = Field(sa_type=DateTime(timezone=True))
    expires_at: datetime = Field(sa_type=DateTime(timezone=True), index=True)
    used_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    revoked: bool = Field(default=False, index=True)
    replaced_by: Optional[str] = Field(default=None, max_length=64)
