# ticket_auth/routers/auth_router.py
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from ..application.ports.identity_provider import FederatedIdentity
from ..application.services.auth_service import AuthContext, AuthService
from ..application.services.token_service import TokenPair, TokenPurpose
from ..core.config import settings
from ..database import check_database
from ..dependencies import (
    Container,
    get_auth_context,
    get_auth_service,
    get_bearer_token,
    get_container,
    get_federated_identity,
    require_bearer_token,
)
from ..exceptions import ValidationFailed, create_success_response
from ..schemas import (
    AccountData,
    HealthData,
    OtpRequestData,
    RequestOtpRequest,
    SignInRequest,
    TokenPairData,
    TokenValidationData,
    ValidateTokenRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix=settings.API_PREFIX, tags=["Authentication"])


def _token_pair(pair: TokenPair) -> dict:
    return TokenPairData(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
    ).model_dump(by_alias=True)


def _context_payload(context: AuthContext) -> dict:
    return TokenValidationData(
        user_id=context.account_id,
        uid=context.uid,
        email=context.email,
        token_type=context.token_type.value,
        user_exists=context.account_exists,
        role=context.role,
        provider=context.provider,
        issued_at=context.issued_at,
        expires_at=context.expires_at,
    ).model_dump(by_alias=True)


@router.post("/sign-up", status_code=201)
async def sign_up(
    token: str = Depends(require_bearer_token),
    service: AuthService = Depends(get_auth_service),
):
    result = await service.sign_up(token)
    account = result.account
    data = AccountData(
        id=account.id,
        uid=account.external_uid,
        email=account.email,
        phone_number=account.phone_number,
        name=result.name,
        picture=result.picture,
        role=account.role.value,
        provider=account.provider.value,
        auth_type=account.auth_type.value,
    ).model_dump(by_alias=True)
    return create_success_response(data, message="User created successfully")


@router.post("/sign-in")
async def sign_in(
    payload: Optional[SignInRequest] = Body(None),
    token: Optional[str] = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
):
    if payload is not None and (payload.phone or payload.otp):
        if not payload.phone or not payload.otp:
            raise ValidationFailed("Both phone and otp are required for OTP sign-in")
        pair = await service.sign_in_with_otp(payload.phone, payload.otp)
    elif token:
        pair = await service.sign_in_federated(token)
    else:
        raise ValidationFailed("Provide a bearer identity token or a phone number with an OTP")
    return create_success_response(_token_pair(pair), message="Signed in successfully")


@router.post("/request-otp")
async def request_otp(
    payload: RequestOtpRequest,
    service: AuthService = Depends(get_auth_service),
):
    result = await service.request_otp(payload.phone)
    data = OtpRequestData(
        remaining_attempts=result.remaining_attempts,
        otp_expires_in=result.expires_in,
    ).model_dump(by_alias=True)
    return create_success_response(data, message="OTP sent successfully")


@router.delete("/sign-out")
async def sign_out(
    identity: FederatedIdentity = Depends(get_federated_identity),
    service: AuthService = Depends(get_auth_service),
):
    await service.sign_out(identity.uid)
    return create_success_response({"signedOut": True}, message="Signed out successfully")


@router.delete("/sign-out/session")
async def sign_out_session(
    context: AuthContext = Depends(get_auth_context),
    service: AuthService = Depends(get_auth_service),
):
    """Sign-out with a platform access token; the only route for phone accounts."""
    await service.sign_out_account(context.account_id)
    return create_success_response({"signedOut": True}, message="Signed out successfully")


@router.post("/validate-token")
async def validate_token(
    payload: Optional[ValidateTokenRequest] = Body(None),
    token: str = Depends(require_bearer_token),
    service: AuthService = Depends(get_auth_service),
):
    purpose = TokenPurpose(payload.type) if payload is not None else TokenPurpose.ACCESS
    context = await service.validate_token(token, purpose)
    return create_success_response(_context_payload(context))


@router.put("/refresh-token")
async def refresh_token(
    token: str = Depends(require_bearer_token),
    service: AuthService = Depends(get_auth_service),
):
    pair = await service.refresh(token)
    return create_success_response(_token_pair(pair), message="Tokens refreshed successfully")


@router.get("/me")
async def me(context: AuthContext = Depends(get_auth_context)):
    return create_success_response(_context_payload(context))


@router.get("/health")
async def health_check(container: Container = Depends(get_container)):
    database_ok = await check_database(container.engine)
    cache_ok = await container.cache.ping()
    data = HealthData(
        status="ok" if database_ok and cache_ok else "degraded",
        database=database_ok,
        cache=cache_ok,
        version=container.settings.APP_VERSION,
    ).model_dump()
    status_code = 200 if data["status"] == "ok" else 503
    return JSONResponse(status_code=status_code, content=create_success_response(data))
