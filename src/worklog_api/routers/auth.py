from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ..auth import create_access_token, get_current_user, get_password_hash, verify_password
from ..dependencies import get_app_settings, get_user_repository
from ..models import UserEntity
from ..schemas import (
    AuthResponse,
    ChangePasswordPayload,
    LoginPayload,
    MessageOut,
    ProfileUpdate,
    RegisterPayload,
    UserOut,
)
from ..settings import Settings
from ..users import DuplicateEmailError, UserRepository

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
)


def _user_out(user: UserEntity) -> UserOut:
    return UserOut(
        id=user["id"],
        name=user["name"],
        email=user["email"],
        bio=user["bio"],
        created_at=user["created_at"],
        updated_at=user["updated_at"],
    )


def _auth_response(user: UserEntity, settings: Settings) -> AuthResponse:
    return AuthResponse(token=create_access_token(user["id"], settings), user=_user_out(user))


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterPayload,
    users: UserRepository = Depends(get_user_repository),
    settings: Settings = Depends(get_app_settings),
) -> AuthResponse:
    """Create a new account and return a bearer token for it."""
    try:
        user = users.create(payload.name, payload.email, get_password_hash(payload.password))
    except DuplicateEmailError:
        raise HTTPException(status_code=400, detail="User already exists") from None
    logger.info("Registered user %s", user["id"])
    return _auth_response(user, settings)


@router.post("/login", response_model=AuthResponse)
def login(
    payload: LoginPayload,
    users: UserRepository = Depends(get_user_repository),
    settings: Settings = Depends(get_app_settings),
) -> AuthResponse:
    """Exchange email and password for a bearer token."""
    user = users.get_by_email(payload.email)
    if user is None or not verify_password(payload.password, user["hashed_password"]):
        logger.warning("Failed login attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _auth_response(user, settings)


@router.get("/profile", response_model=UserOut)
def get_profile(current_user: UserEntity = Depends(get_current_user)) -> UserOut:
    return _user_out(current_user)


@router.put("/profile", response_model=UserOut)
def update_profile(
    payload: ProfileUpdate,
    current_user: UserEntity = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
) -> UserOut:
    """Change name, email or bio. Omitted fields keep their value."""
    fields = payload.model_dump(exclude_unset=True, exclude_none=True)
    try:
        updated = users.update(current_user["id"], fields)
    except DuplicateEmailError:
        raise HTTPException(status_code=400, detail="Email already in use") from None
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return _user_out(updated)


@router.put("/change-password", response_model=MessageOut)
def change_password(
    payload: ChangePasswordPayload,
    current_user: UserEntity = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
) -> MessageOut:
    if not verify_password(payload.current_password, current_user["hashed_password"]):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    users.update(current_user["id"], {"hashed_password": get_password_hash(payload.new_password)})
    logger.info("Password changed for user %s", current_user["id"])
    return MessageOut(message="Password updated successfully")
