import logging
from collections import deque
from typing import Deque, Tuple

from ...application.ports.message_sender import MessageSender

logger = logging.getLogger(__name__)


class ConsoleMessageSender(MessageSender):
    """Development sender: writes the code to the log instead of sending an SMS."""

    def __init__(self, history: int = 100) -> None:
        self.sent: Deque[Tuple[str, str]] = deque(maxlen=history)

    def send(self, phone: str, code: str) -> None:
        self.sent.append((phone, code))
        logger.warning(f"[OTP][DEV] SMS to {phone}: code {code}")

    def last_code(self, phone: str) -> str:
        for sent_phone, code in reversed(self.sent):
            if sent_phone == phone:
                return code
        raise LookupError(f"No code sent to {phone}")
