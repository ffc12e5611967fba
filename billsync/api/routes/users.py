"""User endpoints."""

from fastapi import APIRouter, Depends, Response

from billsync.api.dependencies import get_components
from billsync.api.schemas import CreateUserRequest, UpdateUserRequest
from billsync.models.bill import User
from billsync.orchestrator import AppComponents
from billsync.services.storage import DuplicateError, NotFoundError

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=User, status_code=201)
async def create_user(
    request: CreateUserRequest,
    components: AppComponents = Depends(get_components),
):
    return await components.repository.create_user(User(**request.model_dump()))


@router.get("", response_model=list[User])
async def list_users(components: AppComponents = Depends(get_components)):
    return await components.repository.list_users()


@router.get("/{user_id}", response_model=User)
async def get_user(
    user_id: str,
    components: AppComponents = Depends(get_components),
):
    user = await components.repository.get_user_by_id(user_id)
    if user is None:
        raise NotFoundError(f"User not found: {user_id}")
    return user


@router.put("/{user_id}", response_model=User)
async def update_user(
    user_id: str,
    request: UpdateUserRequest,
    components: AppComponents = Depends(get_components),
):
    """Partial update; omitted fields keep their stored value."""
    repository = components.repository
    user = await repository.get_user_by_id(user_id)
    if user is None:
        raise NotFoundError(f"User not found: {user_id}")

    changes = request.model_dump(exclude_unset=True, exclude_none=True)
    if "email" in changes and changes["email"] != user.email:
        holder = await repository.get_user_by_email(changes["email"])
        if holder is not None and holder.id != user_id:
            raise DuplicateError(f"Email already registered: {changes['email']}")

    updated = User.model_validate({**user.model_dump(), **changes})
    return await repository.update_user(updated)


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: str,
    components: AppComponents = Depends(get_components),
):
    if not await components.repository.delete_user(user_id):
        raise NotFoundError(f"User not found: {user_id}")
    return Response(status_code=204)
