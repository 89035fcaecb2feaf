import dataclasses
import threading
from datetime import datetime
from typing import Dict, Optional

from ....application.ports.challenge_repo import ChallengeRepository, OtpChallenge


class InMemoryChallengeRepository(ChallengeRepository):
    def __init__(self) -> None:
        self._by_phone: Dict[str, OtpChallenge] = {}
        self._phone_by_id: Dict[str, str] = {}
        self._lock = threading.Lock()

    def replace(self, challenge: OtpChallenge) -> None:
        with self._lock:
            previous = self._by_phone.get(challenge.phone)
            if previous is not None:
                self._phone_by_id.pop(previous.id, None)
            self._by_phone[challenge.phone] = challenge
            self._phone_by_id[challenge.id] = challenge.phone

    def get(self, phone: str) -> Optional[OtpChallenge]:
        with self._lock:
            return self._by_phone.get(phone)

    def consume(self, challenge_id: str) -> bool:
        with self._lock:
            phone = self._phone_by_id.pop(challenge_id, None)
            if phone is None:
                return False
            del self._by_phone[phone]
            return True

    def record_failure(self, challenge_id: str) -> Optional[int]:
        with self._lock:
            phone = self._phone_by_id.get(challenge_id)
            if phone is None:
                return None
            challenge = self._by_phone[phone]
            remaining = max(challenge.attempts_remaining - 1, 0)
            self._by_phone[phone] = dataclasses.replace(challenge, attempts_remaining=remaining)
            return remaining

    def purge_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [c for c in self._by_phone.values() if c.is_expired(now)]
            for challenge in expired:
                del self._by_phone[challenge.phone]
                del self._phone_by_id[challenge.id]
            return len(expired)
