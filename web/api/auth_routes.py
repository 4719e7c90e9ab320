"""Auth API routes: login, current user, user management."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import select

import config
from goat.models import Organization, User
from goat.models.base import async_session_factory
from goat.models.enums import UserRole
from web.auth import (
    create_access_token,
    get_current_user,
    get_user_by_username,
    hash_password,
    require_admin_user,
    require_user,
    verify_password,
)

logger = logging.getLogger("goat.auth")

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    username: str
    role: str
    organization_id: int


class UserResponse(BaseModel):
    id: int
    username: str
    role: str
    organization_id: int


class CreateUserRequest(BaseModel):
    username: str
    password: str
    role: UserRole = UserRole.member


def _user_response(user: User) -> UserResponse:
    return UserResponse(id=user.id, username=user.username, role=user.role, organization_id=user.organization_id)


def _login_response(user: User) -> LoginResponse:
    token = create_access_token(user.username, user.role, user.organization_id)
    return LoginResponse(
        access_token=token, username=user.username, role=user.role, organization_id=user.organization_id
    )


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest):
    """Authenticate and return JWT."""
    user = await get_user_by_username(body.username)
    if not user:
        # Bootstrap: if INITIAL_ADMIN_PASSWORD is set and matches, create admin in the initial organization
        if (
            config.INITIAL_ADMIN_PASSWORD
            and body.username == config.INITIAL_ADMIN_USERNAME
            and body.password == config.INITIAL_ADMIN_PASSWORD
        ):
            async with async_session_factory() as session:
                result = await session.execute(
                    select(Organization).where(Organization.name == config.INITIAL_ORGANIZATION_NAME).limit(1)
                )
                organization = result.scalar_one_or_none()
                if not organization:
                    organization = Organization(name=config.INITIAL_ORGANIZATION_NAME)
                    session.add(organization)
                    await session.flush()
                user = User(
                    organization_id=organization.id,
                    username=config.INITIAL_ADMIN_USERNAME,
                    password_hash=hash_password(config.INITIAL_ADMIN_PASSWORD),
                    role=UserRole.admin.value,
                )
                session.add(user)
                await session.commit()
                await session.refresh(user)
                logger.info("Bootstrapped admin %s in organization %s", user.username, organization.id)
                return _login_response(user)
        raise HTTPException(status_code=401, detail="Invalid username or password")
    if not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid username or password")
    return _login_response(user)


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(require_user)):
    """Get current authenticated user."""
    return _user_response(user)


@router.get("/me/optional")
async def get_me_optional(user: Optional[User] = Depends(get_current_user)):
    """Get current user if logged in, else null. For frontend auth check."""
    if not user:
        return None
    return _user_response(user)


@router.get("/users", response_model=list[UserResponse])
async def list_users(admin: User = Depends(require_admin_user)):
    """List users of the admin's organization."""
    async with async_session_factory() as session:
        result = await session.execute(
            select(User).where(User.organization_id == admin.organization_id).order_by(User.username)
        )
        return [_user_response(u) for u in result.scalars().all()]


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(body: CreateUserRequest, admin: User = Depends(require_admin_user)):
    """Create a user in the admin's organization."""
    async with async_session_factory() as session:
        existing = await session.execute(select(User).where(User.username == body.username))
        if existing.scalar_one_or_none():
            raise HTTPException(400, "Username already exists")
        user = User(
            organization_id=admin.organization_id,
            username=body.username,
            password_hash=hash_password(body.password),
            role=body.role.value,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return _user_response(user)


class UpdateUserRequest(BaseModel):
    password: Optional[str] = None
    role: Optional[UserRole] = None


async def _get_org_user(session, admin: User, username: str) -> User:
    result = await session.execute(
        select(User).where(User.username == username, User.organization_id == admin.organization_id)
    )
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(404, "User not found")
    return user


@router.patch("/users/{username}")
async def update_user(username: str, body: UpdateUserRequest, admin: User = Depends(require_admin_user)):
    """Update user password or role (admin only)."""
    async with async_session_factory() as session:
        user = await _get_org_user(session, admin, username)
        if body.password is not None:
            user.password_hash = hash_password(body.password)
        if body.role is not None:
            user.role = body.role.value
        await session.commit()
        return {"ok": True}


@router.delete("/users/{username}")
async def delete_user(username: str, admin: User = Depends(require_admin_user)):
    """Delete a user (admin only). Cannot delete self."""
    if username == admin.username:
        raise HTTPException(400, "Cannot delete your own account")
    async with async_session_factory() as session:
        user = await _get_org_user(session, admin, username)
        await session.delete(user)
        await session.commit()
        return {"ok": True}
