import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..application.ports.account_repo import RegistrationDetails
from ..application.ports.challenge_repo import ChallengeType
from ..application.services.auth_service import AuthService
from ..application.services.token_service import AccountIdentity, TokenPair
from ..dependencies import get_auth_service
from ..exceptions import create_success_response
from ..schemas import (
    LoginOrRegisterRequest, LoginOrRegisterResponse, VerifyOTPRequest, VerifyOTPResponse, VerifyOTPData, AccountData,
    RefreshTokenRequest, RefreshTokenResponse, LogoutRequest, LogoutResponse, MeResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

# Auth scheme
bearer_scheme = HTTPBearer(auto_error=False)


def get_client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    service: AuthService = Depends(get_auth_service),
) -> AccountIdentity:
    if credentials is None or not credentials.credentials:
        logger.info("Request without bearer token")
        raise HTTPException(status_code=401, detail="Authentication required")
    return service.authenticate(credentials.credentials)


def _token_data(pair: TokenPair) -> dict:
    return {
        "access_token": pair.access_token,
        "refresh_token": pair.refresh_token,
        "token_type": pair.token_type,
        "expires_in": pair.expires_in,
        "refresh_expires_in": pair.refresh_expires_in,
    }


@router.post("/login-or-register", response_model=LoginOrRegisterResponse)
def login_or_register(
    body: LoginOrRegisterRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
):
    details = None
    if body.business_name and body.owner_name:
        details = RegistrationDetails(business_name=body.business_name, owner_name=body.owner_name)

    result = service.start_auth(body.phone_number, details, rate_limit_key=get_client_ip(request))
    return create_success_response(
        {
            "action": result.action.value,
            "phone_number": str(result.phone),
            "expires_in": result.expires_in,
        },
        message="OTP sent successfully",
    )


@router.post("/verify-otp", response_model=VerifyOTPResponse)
def verify_otp(body: VerifyOTPRequest, service: AuthService = Depends(get_auth_service)):
    result = service.verify_auth(body.phone_number, body.otp, body.challenge_type)
    account = result.account
    return create_success_response(
        VerifyOTPData(
            **_token_data(result.tokens),
            account=AccountData(
                id=account.id,
                phone_number=account.phone,
                is_verified=account.is_verified,
                business_name=account.business_name,
                owner_name=account.owner_name,
            ),
        ),
        message="Registration successful" if body.challenge_type == ChallengeType.REGISTER else "Login successful",
    )


@router.post("/refresh-token", response_model=RefreshTokenResponse)
def refresh_token(body: RefreshTokenRequest, service: AuthService = Depends(get_auth_service)):
    pair = service.refresh_session(body.refresh_token)
    return create_success_response(_token_data(pair), message="Token refreshed")


@router.post("/logout", response_model=LogoutResponse)
def logout(body: LogoutRequest, service: AuthService = Depends(get_auth_service)):
    revoked = service.logout(body.refresh_token)
    return create_success_response({"revoked": revoked}, message="Logged out")


@router.post("/logout-all", response_model=LogoutResponse)
def logout_all(
    identity: AccountIdentity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
):
    revoked = service.logout_everywhere(identity.account_id)
    return create_success_response({"revoked": revoked}, message="Logged out on all devices")


@router.get("/me", response_model=MeResponse)
def me(identity: AccountIdentity = Depends(get_current_identity)):
    return create_success_response({
        "account_id": identity.account_id,
        "phone_number": identity.phone,
        "expires_at": identity.expires_at.isoformat(),
    })
