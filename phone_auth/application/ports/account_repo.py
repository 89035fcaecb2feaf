from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Protocol


@dataclass(frozen=True)
class RegistrationDetails:
    business_name: str
    owner_name: str
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Account:
    id: str
    phone: str
    is_verified: bool
    is_active: bool
    created_at: datetime
    profile_ref: Optional[str] = None
    business_name: Optional[str] = None
    owner_name: Optional[str] = None
    profile: Dict[str, Any] = field(default_factory=dict)


class AccountRepository(Protocol):
    def account_exists(self, phone: str) -> bool:
        ...

    def get_by_phone(self, phone: str) -> Optional[Account]:
        ...

    def get_by_id(self, account_id: str) -> Optional[Account]:
        ...

    def create_account(self, phone: str, details: RegistrationDetails, verified: bool = False) -> Account:
        """Create-if-absent; raises AccountAlreadyExists when the phone is taken."""
        ...

    def mark_verified(self, account_id: str) -> None:
        ...
