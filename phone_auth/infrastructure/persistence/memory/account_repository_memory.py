import dataclasses
import threading
import uuid
from typing import Dict, Optional

from ....application.ports.account_repo import Account, AccountRepository, RegistrationDetails
from ....core.utils import utcnow
from ....exceptions import AccountAlreadyExists


class InMemoryAccountRepository(AccountRepository):
    def __init__(self) -> None:
        self._by_phone: Dict[str, Account] = {}
        self._lock = threading.Lock()

    def account_exists(self, phone: str) -> bool:
        with self._lock:
            return phone in self._by_phone

    def get_by_phone(self, phone: str) -> Optional[Account]:
        with self._lock:
            return self._by_phone.get(phone)

    def get_by_id(self, account_id: str) -> Optional[Account]:
        with self._lock:
            return next((a for a in self._by_phone.values() if a.id == account_id), None)

    def create_account(self, phone: str, details: RegistrationDetails, verified: bool = False) -> Account:
        account_id = str(uuid.uuid4())
        account = Account(
            id=account_id,
            phone=phone,
            is_verified=verified,
            is_active=True,
            created_at=utcnow(),
            profile_ref=account_id,
            business_name=details.business_name,
            owner_name=details.owner_name,
            profile=dict(details.extra),
        )
        with self._lock:
            if phone in self._by_phone:
                raise AccountAlreadyExists(f"Account already exists for {phone}")
            self._by_phone[phone] = account
        return account

    def mark_verified(self, account_id: str) -> None:
        self._update(account_id, is_verified=True)

    def set_active(self, account_id: str, active: bool) -> None:
        self._update(account_id, is_active=active)

    def _update(self, account_id: str, **changes) -> None:
        with self._lock:
            for phone, account in self._by_phone.items():
                if account.id == account_id:
                    self._by_phone[phone] = dataclasses.replace(account, **changes)
                    return
