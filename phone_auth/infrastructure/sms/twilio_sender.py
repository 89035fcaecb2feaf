import logging
from typing import Optional

from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from ...application.ports.message_sender import MessageSender
from ...core.utils import mask_phone_number
from ...exceptions import SendFailed

logger = logging.getLogger(__name__)


class TwilioMessageSender(MessageSender):
    def __init__(self, account_sid: str, auth_token: str, from_number: str, timeout: int = 5, expire_minutes: int = 5, client: Optional[Client] = None):
        if client is None:
            # No retries: a resend is the user's call, not ours
            http_client = TwilioHttpClient(timeout=timeout, max_retries=0)
            client = Client(account_sid, auth_token, http_client=http_client)
        self.client = client
        self.from_number = from_number
        self.expire_minutes = expire_minutes

    def send(self, phone: str, code: str) -> None:
        if not self.from_number:
            raise SendFailed("Twilio sender number not configured")
        body = f"Your verification code is {code}. It expires in {self.expire_minutes} minutes."
        try:
            message = self.client.messages.create(to=phone, from_=self.from_number, body=body)
        except TwilioException as e:
            raise SendFailed(f"Twilio rejected the message: {e}") from e
        except Exception as e:
            raise SendFailed(f"Twilio request failed: {e}") from e
        logger.info(f"OTP SMS queued for {mask_phone_number(phone)}, SID: {message.sid}")
