import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Union

from ..ports.challenge_repo import ChallengeType, OtpChallenge
from ..ports.message_sender import MessageSender
from ..ports.rate_limiter import RateLimiter
from .otp_store import IssuedChallenge, OtpStore
from ...core.utils import mask_phone_number
from ...exceptions import RateLimited, SendFailed

logger = logging.getLogger(__name__)


@dataclass
class OtpIssuer:
    """Rate-limits issuance, writes the challenge, then hands the code to the sender."""

    store: OtpStore
    sender: MessageSender
    limiter: RateLimiter
    phone_limit: Tuple[int, int] = (3, 600)
    address_limit: Optional[Tuple[int, int]] = (20, 3600)

    def issue(
        self,
        phone: str,
        challenge_type: Union[ChallengeType, str],
        rate_limit_key: Optional[str] = None,
        on_stored: Optional[Callable[[OtpChallenge], None]] = None,
    ) -> IssuedChallenge:
        """``on_stored`` runs after the challenge is written and before the code is sent."""
        self._check_limits(str(phone), rate_limit_key)

        issued = self.store.put(phone, challenge_type)
        if on_stored is not None:
            on_stored(issued.challenge)
        try:
            self.sender.send(str(phone), issued.code)
        except SendFailed:
            logger.warning(f"OTP send failed for {mask_phone_number(str(phone))}; challenge {issued.challenge.id} stays valid")
            raise
        except Exception as e:
            logger.error(f"OTP sender error for {mask_phone_number(str(phone))}: {e}")
            raise SendFailed(str(e)) from e
        return issued

    def _check_limits(self, phone: str, rate_limit_key: Optional[str]) -> None:
        # The coarse key goes first so a request it blocks never spends one of the phone's slots
        if rate_limit_key and self.address_limit:
            max_requests, window = self.address_limit
            if not self.limiter.allow(f"otp:key:{rate_limit_key}", max_requests, window):
                raise RateLimited(f"Key {rate_limit_key} exceeded {max_requests} OTPs per {window}s")

        max_requests, window = self.phone_limit
        if not self.limiter.allow(f"otp:phone:{phone}", max_requests, window):
            raise RateLimited(f"Phone {mask_phone_number(phone)} exceeded {max_requests} OTPs per {window}s")
