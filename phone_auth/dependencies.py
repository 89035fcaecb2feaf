import logging
from functools import lru_cache
from typing import Optional

from .application.ports.message_sender import MessageSender
from .application.ports.rate_limiter import RateLimiter
from .application.services.account_resolver import AccountResolver
from .application.services.auth_service import AuthService
from .application.services.otp_issuer import OtpIssuer
from .application.services.otp_store import OtpStore
from .application.services.token_service import TokenService
from .core.config import Settings, get_settings
from .infrastructure.audit.std_logger import StdAuditLogger
from .infrastructure.persistence.memory.account_repository_memory import InMemoryAccountRepository
from .infrastructure.persistence.memory.challenge_repository_memory import InMemoryChallengeRepository
from .infrastructure.persistence.memory.refresh_token_repository_memory import InMemoryRefreshTokenRepository
from .infrastructure.persistence.memory.registration_staging_memory import InMemoryRegistrationStaging
from .infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter
from .infrastructure.sms.console_sender import ConsoleMessageSender

logger = logging.getLogger(__name__)


def build_rate_limiter(settings: Settings) -> RateLimiter:
    if settings.REDIS_URL:
        from .infrastructure.rate_limit.redis_rate_limiter import RedisRateLimiter
        logger.info("Using Redis rate limiter")
        return RedisRateLimiter(settings.REDIS_URL)
    return InMemoryRateLimiter()


def build_message_sender(settings: Settings) -> MessageSender:
    provider = settings.SMS_PROVIDER.lower()
    if provider == "twilio":
        from .infrastructure.sms.twilio_sender import TwilioMessageSender
        return TwilioMessageSender(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            settings.TWILIO_FROM_NUMBER,
            timeout=settings.SMS_SEND_TIMEOUT_SECONDS,
            expire_minutes=settings.OTP_EXPIRE_MINUTES,
        )
    if provider != "console":
        raise ValueError(f"Unknown SMS_PROVIDER: {settings.SMS_PROVIDER!r}")
    logger.warning("SMS_PROVIDER=console: OTP codes are written to the log, not sent")
    return ConsoleMessageSender()


def build_auth_service(settings: Settings, sender: Optional[MessageSender] = None, limiter: Optional[RateLimiter] = None) -> AuthService:
    """Assemble the auth core from settings. ``sender`` and ``limiter`` override the configured adapters."""
    backend = settings.STORAGE_BACKEND.lower()
    if backend == "sql":
        from .database import build_engine, create_db_and_tables
        from .infrastructure.persistence.sqlalchemy.repositories.account_repository_sql import SqlAccountRepository
        from .infrastructure.persistence.sqlalchemy.repositories.challenge_repository_sql import SqlChallengeRepository
        from .infrastructure.persistence.sqlalchemy.repositories.refresh_token_repository_sql import SqlRefreshTokenRepository
        from .infrastructure.persistence.sqlalchemy.repositories.registration_staging_sql import SqlRegistrationStaging

        engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)
        create_db_and_tables(engine)
        challenges = SqlChallengeRepository(engine)
        accounts = SqlAccountRepository(engine)
        staging = SqlRegistrationStaging(engine)
        refresh_tokens = SqlRefreshTokenRepository(engine)
    elif backend == "memory":
        challenges = InMemoryChallengeRepository()
        accounts = InMemoryAccountRepository()
        staging = InMemoryRegistrationStaging()
        refresh_tokens = InMemoryRefreshTokenRepository()
    else:
        raise ValueError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND!r}")

    otp_store = OtpStore(
        challenges,
        code_length=settings.OTP_LENGTH,
        ttl=settings.otp_ttl,
        max_attempts=settings.OTP_MAX_ATTEMPTS,
    )
    issuer = OtpIssuer(
        otp_store,
        sender if sender is not None else build_message_sender(settings),
        limiter if limiter is not None else build_rate_limiter(settings),
        phone_limit=settings.otp_issue_rate_limit,
        address_limit=settings.otp_address_rate_limit,
    )
    resolver = AccountResolver(accounts, staging)
    tokens = TokenService(
        refresh_tokens,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
        access_ttl=settings.access_token_ttl,
        refresh_ttl=settings.refresh_token_ttl,
        issuer=settings.JWT_ISSUER,
        audience=settings.JWT_AUDIENCE,
    )
    logger.info(f"Auth service ready (storage={backend}, sms={settings.SMS_PROVIDER})")
    return AuthService(resolver, issuer, otp_store, tokens, audit=StdAuditLogger())


@lru_cache()
def get_auth_service() -> AuthService:
    return build_auth_service(get_settings())
