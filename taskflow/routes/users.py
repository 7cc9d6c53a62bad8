"""User directory and account management endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.auth import Actor, get_current_actor
from taskflow.database import get_db
from taskflow.exceptions import TaskflowError, raise_http_exception
from taskflow.schemas import (
    MessageResponse,
    ProfileUpdate,
    UserCreate,
    UserMutationResponse,
    UserResponse,
    UserUpdate,
)
from taskflow.services import user_service

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("", response_model=list[UserResponse])
async def list_users(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return [UserResponse.model_validate(u) for u in await user_service.list_users(db)]


@router.post("", response_model=UserMutationResponse, status_code=201)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Provision a user account. Admin only."""
    try:
        result = await user_service.create_user(
            db, actor,
            name=body.name,
            email=body.email,
            password=body.password,
            phone=body.phone,
            role=body.role,
        )
    except TaskflowError as e:
        raise_http_exception(e)
    return UserMutationResponse(
        user=UserResponse.model_validate(result.entity), warnings=result.warnings
    )


@router.patch("/me", response_model=UserResponse)
async def update_profile(
    body: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Change the caller's own name or phone."""
    try:
        user = await user_service.update_profile(db, actor, body.model_dump(exclude_unset=True))
    except TaskflowError as e:
        raise_http_exception(e)
    return UserResponse.model_validate(user)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    try:
        user = await user_service.get_user(db, user_id)
    except TaskflowError as e:
        raise_http_exception(e)
    return UserResponse.model_validate(user)


@router.patch("/{user_id}", response_model=UserMutationResponse)
async def update_user(
    user_id: int,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Edit an account's name, email, phone or role. Admin only."""
    try:
        result = await user_service.update_user(
            db, actor, user_id, body.model_dump(exclude_unset=True)
        )
    except TaskflowError as e:
        raise_http_exception(e)
    return UserMutationResponse(
        user=UserResponse.model_validate(result.entity), warnings=result.warnings
    )


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Delete an account. Admin only; admins cannot delete themselves."""
    try:
        await user_service.delete_user(db, actor, user_id)
    except TaskflowError as e:
        raise_http_exception(e)
    return MessageResponse(message=f"User {user_id} deleted")
