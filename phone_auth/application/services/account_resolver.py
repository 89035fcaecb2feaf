import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Union

from ..ports.account_repo import Account, AccountRepository, RegistrationDetails
from ..ports.challenge_repo import ChallengeType, OtpChallenge
from ..ports.registration_staging import RegistrationStaging
from ...core.utils import mask_phone_number, utcnow
from ...exceptions import AccountDisabled, AccountNotFound, RegistrationDetailsRequired

logger = logging.getLogger(__name__)

# The action chosen for a phone number is the type of challenge it receives
AuthAction = ChallengeType


@dataclass(frozen=True)
class AccountStatus:
    exists: bool
    verified: bool
    active: bool = True


@dataclass
class AccountResolver:
    accounts: AccountRepository
    staging: RegistrationStaging
    clock: Callable[[], datetime] = utcnow

    def resolve(self, phone: str) -> AccountStatus:
        account = self.accounts.get_by_phone(str(phone))
        if account is None:
            return AccountStatus(exists=False, verified=False, active=False)
        return AccountStatus(exists=True, verified=account.is_verified, active=account.is_active)

    def begin_auth(self, phone: str, registration_details: Optional[RegistrationDetails] = None) -> AuthAction:
        """Decide between login and register.

        Existing accounts always log in, whatever details were sent. Unknown
        numbers need registration details; they are staged by ``stage`` once
        the challenge they were sent with exists.
        """
        account = self.accounts.get_by_phone(str(phone))
        if account is not None:
            if not account.is_active:
                raise AccountDisabled(f"Account {account.id} is deactivated")
            return AuthAction.LOGIN

        details = self._clean(registration_details)
        if details is None:
            raise RegistrationDetailsRequired()
        return AuthAction.REGISTER

    def stage(self, phone: str, registration_details: RegistrationDetails, challenge: OtpChallenge) -> None:
        """Hold the details until ``challenge`` is verified; they expire with it."""
        details = self._clean(registration_details)
        if details is None:
            raise RegistrationDetailsRequired()
        self.staging.stage(str(phone), details, challenge.id, challenge.expires_at)
        logger.info(f"Registration details staged for {mask_phone_number(str(phone))} (challenge {challenge.id})")

    def take_staged(self, phone: str, challenge_id: str) -> Optional[RegistrationDetails]:
        return self.staging.take(str(phone), challenge_id, self.clock())

    def complete_auth(self, phone: str, challenge_type: Union[ChallengeType, str], staged_details: Optional[RegistrationDetails] = None) -> Account:
        if ChallengeType(challenge_type) == ChallengeType.LOGIN:
            account = self.accounts.get_by_phone(str(phone))
            if account is None:
                raise AccountNotFound(f"No account for {mask_phone_number(str(phone))}")
            if not account.is_active:
                raise AccountDisabled(f"Account {account.id} is deactivated")
            if not account.is_verified:
                self.accounts.mark_verified(account.id)
                account = dataclasses.replace(account, is_verified=True)
            return account

        if staged_details is None:
            raise RegistrationDetailsRequired("Registration details expired before verification")
        # create_account is create-if-absent and raises AccountAlreadyExists on a race
        account = self.accounts.create_account(str(phone), staged_details, verified=True)
        logger.info(f"Account {account.id} registered for {mask_phone_number(str(phone))}")
        return account

    def purge_expired(self) -> int:
        return self.staging.purge_expired(self.clock())

    @staticmethod
    def _clean(details: Optional[RegistrationDetails]) -> Optional[RegistrationDetails]:
        if details is None:
            return None
        business_name = (details.business_name or "").strip()
        owner_name = (details.owner_name or "").strip()
        if not business_name or not owner_name:
            return None
        return dataclasses.replace(details, business_name=business_name, owner_name=owner_name)
