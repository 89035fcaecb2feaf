from typing import Protocol


class MessageSender(Protocol):
    def send(self, phone: str, code: str) -> None:
        """Deliver ``code``; raises SendFailed when delivery fails."""
        ...
