# ============================================================================
# Authentication Endpoints
# ============================================================================
"""
Authentication endpoints for the learning platform.

Provides:
- Registration with email verification
- Email/password login with JWT access + refresh tokens
- Refresh token rotation (body or httpOnly cookie)
- Password reset by emailed one-time token
- Current user profile retrieval
"""
from fastapi import APIRouter, Depends, Query, Request, Response, status
from typing import Optional

from app.api.deps import (
    get_auth_service,
    get_container,
    get_current_user,
    rate_limit_auth,
)
from app.core.container import Container
from app.core.exceptions import UnauthorizedError
from app.models.user import User
from app.schemas.responses import DataResponse, MessageResponse
from app.schemas.user import (
    EmailRequest,
    LoginRequest,
    LoginResult,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserPublic,
)
from app.services.auth.auth_service import AuthService

router = APIRouter(
    prefix="/auth",
    tags=["authentication"],
    dependencies=[Depends(rate_limit_auth)],
)

REFRESH_COOKIE = "refreshToken"


def _set_refresh_cookie(response: Response, token: str, container: Container) -> None:
    settings = container.settings
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=token,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )


# ============================================================================
# Registration & Verification
# ============================================================================
@router.post(
    "/register",
    response_model=DataResponse[UserPublic],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    payload: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """
    Register a new account.

    The account starts unverified; a verification link is emailed and, for
    students under 18, the parent is notified.
    """
    result = await auth.register(payload)
    return DataResponse(data=result.user, message=result.message)


@router.get("/verify-email", response_model=MessageResponse)
async def verify_email(
    token: Optional[str] = Query(None),
    auth: AuthService = Depends(get_auth_service),
):
    return await auth.verify_email(token)


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    payload: EmailRequest,
    auth: AuthService = Depends(get_auth_service),
):
    return await auth.resend_verification_email(payload.email)


# ============================================================================
# Login & Token Management
# ============================================================================
@router.post("/login", response_model=DataResponse[LoginResult])
async def login(
    payload: LoginRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    container: Container = Depends(get_container),
):
    """
    Login with email and password.

    Only verified accounts may log in. The refresh token is returned in the
    body and also set as an httpOnly cookie.
    """
    result = await auth.login(payload.email, payload.password)
    _set_refresh_cookie(response, result.tokens.refresh_token, container)
    return DataResponse(data=result, message="Login successful")


@router.post("/refresh", response_model=DataResponse[TokenResponse])
async def refresh_token(
    request: Request,
    response: Response,
    payload: Optional[RefreshTokenRequest] = None,
    auth: AuthService = Depends(get_auth_service),
    container: Container = Depends(get_container),
):
    """
    Exchange a refresh token for a new token pair.

    The token is read from the JSON body, falling back to the cookie.
    """
    token = (payload.refresh_token if payload else None) or request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise UnauthorizedError("No refresh token provided")

    tokens = await auth.refresh_token(token)
    _set_refresh_cookie(response, tokens.refresh_token, container)
    return DataResponse(data=tokens, message="Token refreshed successfully")


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response):
    """
    Logout.

    Tokens are stateless: this only clears the refresh cookie. Clients
    discard the access token themselves.
    """
    response.delete_cookie(REFRESH_COOKIE, httponly=True, samesite="strict")
    return MessageResponse(message="Logout successful")


# ============================================================================
# Password Management
# ============================================================================
@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    payload: EmailRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Always answers the same way, whether or not the account exists."""
    return await auth.forgot_password(payload.email)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    payload: ResetPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
):
    return await auth.reset_password(payload.token, payload.password)


# ============================================================================
# Current User Profile
# ============================================================================
@router.get("/profile", response_model=DataResponse[UserPublic])
async def get_profile(current_user: User = Depends(get_current_user)):
    """Get the authenticated user's profile (requires a bearer access token)."""
    return DataResponse(data=UserPublic.from_user(current_user))
