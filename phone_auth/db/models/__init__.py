# Models package (re-export feature modules for stable imports)
from .users.account import AccountRow
from .auth.otp import OtpChallengeRecord, PendingRegistration
from .auth.refresh_token import RefreshTokenRow

__all__ = [
    "AccountRow",
    "OtpChallengeRecord",
    "PendingRegistration",
    "RefreshTokenRow",
]
