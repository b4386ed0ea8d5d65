# natours/models/review.py
from datetime import datetime
from typing import Optional
from uuid import uuid4

from pydantic import Field

from natours.models.common import CamelModel


class ReviewCreate(CamelModel):
    review: str = Field(..., min_length=1, description="Review can not be empty!")
    rating: int = Field(..., ge=1, le=5)
    tour: Optional[str] = Field(None, description="Tour id; taken from the URL on nested routes")


class ReviewUpdate(CamelModel):
    review: Optional[str] = Field(None, min_length=1)
    rating: Optional[int] = Field(None, ge=1, le=5)


class Review(CamelModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    review: str
    rating: int = Field(..., ge=1, le=5)
    created_at: datetime = Field(default_factory=datetime.now)
    tour: str
    user: str
