# phone_auth/db/models/users/account.py
from typing import Optional
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field
from datetime import datetime
import uuid

from ....core.utils import utcnow


class AccountRow(SQLModel, table=True):
    __tablename__ = "accounts"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    phone: str = Field(max_length=16, unique=True, index=True)
    business_name: str = Field(max_length=100)
    owner_name: str = Field(max_length=50)
    profile_json: str = Field(default="{}")
    is_verified: bool = Field(default=False)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    verified_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
