from typing import Dict, Optional

from fastapi import APIRouter, Depends, Response, status

from natours.dependencies import get_current_user, get_user_store
from natours.errors import AppError
from natours.models.user import User, UserCreate, UserUpdate
from natours.pipeline.sanitize import clean_path_params
from natours.responses import success
from natours.storage import JsonCollection

router = APIRouter(
    prefix="/users",
    tags=["users"],
    dependencies=[Depends(clean_path_params)],
    responses={
        404: {"description": "Not found"},
        400: {"description": "Bad Request"},
    },
)


def email_taken(store: JsonCollection, email: str, exclude_user_id: Optional[str] = None) -> bool:
    normalized = email.lower()
    return store.find_one(
        lambda u: u["email"].lower() == normalized and u["id"] != exclude_user_id
    ) is not None


def get_user_or_404(store: JsonCollection, user_id: str) -> Dict:
    user = store.get(user_id)
    if not user:
        raise AppError("No user found with that ID", status.HTTP_404_NOT_FOUND)
    return user


@router.get("")
async def get_all_users(store: JsonCollection = Depends(get_user_store)):
    return success(store.find(lambda u: u.get("active", True)))


@router.get("/me")
async def get_me(current_user: Dict = Depends(get_current_user)):
    return success(current_user)


@router.get("/{user_id}")
async def get_user(user_id: str, store: JsonCollection = Depends(get_user_store)):
    return success(get_user_or_404(store, user_id))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(user: UserCreate, store: JsonCollection = Depends(get_user_store)):
    if email_taken(store, user.email):
        raise AppError(
            f"Email address '{user.email}' is already in use",
            status.HTTP_400_BAD_REQUEST,
        )
    new_user = User(**user.model_dump())
    return success(store.add(new_user.to_document()))


@router.patch("/{user_id}")
async def update_user(
    user_id: str,
    user_update: UserUpdate,
    store: JsonCollection = Depends(get_user_store),
):
    get_user_or_404(store, user_id)
    update_data = user_update.to_document(exclude_unset=True)
    if not update_data:
        available_fields = ", ".join(UserUpdate.model_fields.keys())
        raise AppError(
            f"Update request must include at least one of: {available_fields}",
            status.HTTP_400_BAD_REQUEST,
        )
    if "email" in update_data:
        update_data["email"] = update_data["email"].lower()
        if email_taken(store, update_data["email"], exclude_user_id=user_id):
            raise AppError(
                f"Email address '{update_data['email']}' is already in use by another user",
                status.HTTP_400_BAD_REQUEST,
            )
    return success(store.update(user_id, update_data))


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str, store: JsonCollection = Depends(get_user_store)):
    """Deactivate the user; bookings and reviews keep referring to it."""
    get_user_or_404(store, user_id)
    store.update(user_id, {"active": False})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
