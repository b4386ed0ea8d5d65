# natours/models/user.py
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import EmailStr, Field, field_validator

from natours.models.common import CamelModel


class Role(str, Enum):
    USER = "user"
    GUIDE = "guide"
    LEAD_GUIDE = "lead-guide"
    ADMIN = "admin"


class UserBase(CamelModel):
    name: str = Field(..., min_length=1, max_length=100, description="User's full name")
    email: EmailStr = Field(..., description="User's email address")
    photo: str = "default.jpg"
    role: Role = Role.USER

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower()


class UserCreate(UserBase):
    pass


class UserUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    photo: Optional[str] = None
    role: Optional[Role] = None


class User(UserBase):
    id: str = Field(default_factory=lambda: uuid4().hex)
    active: bool = True
