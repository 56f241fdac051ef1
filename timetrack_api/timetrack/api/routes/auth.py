from __future__ import annotations

from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.deps import get_current_active_user, get_tenant_id, get_tenant_session
from timetrack.core.security import REFRESH_TOKEN, create_access_token, create_refresh_token, decode_token
from timetrack.db.models.users import User
from timetrack.schemas.auth import ProfileUpdate, RefreshRequest, RegisterRequest, TokenPair, UserRead
from timetrack.schemas.common import MessageResponse
from timetrack.services.users import UserService

router = APIRouter(prefix="/auth", tags=["Auth"])


def _tokens(user: User, tenant_id: UUID) -> TokenPair:
    return TokenPair(
        access_token=create_access_token(subject=str(user.id), tenant_id=str(tenant_id)),
        refresh_token=create_refresh_token(subject=str(user.id), tenant_id=str(tenant_id)),
    )


# PUBLIC_INTERFACE
@router.post(
    "/register",
    response_model=UserRead,
    status_code=201,
    summary="Register user",
    description="Create a new user for the current tenant.",
)
async def register_user(
    payload: RegisterRequest,
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    """Register a new user under the tenant."""
    user = await UserService(session).register(payload)
    return UserRead.model_validate(user)


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=TokenPair,
    summary="Login",
    description="Authenticate using OAuth2 password form and receive access/refresh tokens.",
)
async def login_for_tokens(
    form_data: OAuth2PasswordRequestForm = Depends(),
    tenant_id: UUID = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_tenant_session),
) -> TokenPair:
    """Authenticate user and issue tokens."""
    user = await UserService(session).authenticate(form_data.username, form_data.password)
    return _tokens(user, tenant_id)


# PUBLIC_INTERFACE
@router.post(
    "/refresh",
    response_model=TokenPair,
    summary="Refresh access token",
    description="Issue a new token pair from a valid refresh token.",
)
async def refresh_token(
    payload: RefreshRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_tenant_session),
) -> TokenPair:
    """Validate refresh token and issue a new access token pair."""
    try:
        claims: Dict[str, Any] = decode_token(payload.refresh_token, expected_type=REFRESH_TOKEN)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")
    if str(tenant_id) != str(claims.get("tenant_id")):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tenant mismatch")

    user = await UserService(session).get_active(UUID(claims["sub"]))
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    return _tokens(user, tenant_id)


# PUBLIC_INTERFACE
@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout",
    description="Stateless logout. Clients should discard tokens.",
)
async def logout() -> MessageResponse:
    return MessageResponse(message="Logged out")


# PUBLIC_INTERFACE
@router.get("/me", response_model=UserRead, summary="Read current user")
async def read_current_user(user: User = Depends(get_current_active_user)) -> UserRead:
    """Return current user profile."""
    return UserRead.model_validate(user)


# PUBLIC_INTERFACE
@router.put(
    "/me",
    response_model=UserRead,
    summary="Update profile",
    description="Update name, email, password, default rate, currency or the GitHub token.",
)
async def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    user = await UserService(session).update_profile(user, payload)
    return UserRead.model_validate(user)
