from functools import lru_cache
from typing import Dict, Optional

from fastapi import Depends, Request, status

from natours.config import get_settings
from natours.errors import AppError
from natours.storage import JsonCollection

SESSION_COOKIE = "user_id"


@lru_cache
def get_tour_store() -> JsonCollection:
    return JsonCollection(get_settings().data_dir / "tours.json")


@lru_cache
def get_user_store() -> JsonCollection:
    return JsonCollection(get_settings().data_dir / "users.json")


@lru_cache
def get_review_store() -> JsonCollection:
    return JsonCollection(get_settings().data_dir / "reviews.json")


@lru_cache
def get_booking_store() -> JsonCollection:
    return JsonCollection(get_settings().data_dir / "bookings.json")


def request_cookies(request: Request) -> Dict[str, str]:
    return getattr(request.state, "cookies", None) or request.cookies


def get_optional_user(
    request: Request,
    users: JsonCollection = Depends(get_user_store),
) -> Optional[Dict]:
    user_id = request_cookies(request).get(SESSION_COOKIE)
    if not user_id:
        return None
    user = users.get(user_id)
    if not user or not user.get("active", True):
        return None
    return user


def get_current_user(
    request: Request,
    users: JsonCollection = Depends(get_user_store),
) -> Dict:
    user_id = request_cookies(request).get(SESSION_COOKIE)
    if not user_id:
        raise AppError(
            "You are not logged in! Please log in to get access.",
            status.HTTP_401_UNAUTHORIZED,
        )
    user = users.get(user_id)
    if not user or not user.get("active", True):
        raise AppError(
            "The user belonging to this session does no longer exist.",
            status.HTTP_401_UNAUTHORIZED,
        )
    return user
