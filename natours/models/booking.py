# natours/models/booking.py
from datetime import datetime
from typing import Optional
from uuid import uuid4

from pydantic import Field

from natours.models.common import CamelModel


class BookingCreate(CamelModel):
    tour: str
    user: str
    price: float = Field(..., gt=0)
    paid: bool = True


class BookingUpdate(CamelModel):
    price: Optional[float] = Field(None, gt=0)
    paid: Optional[bool] = None


class Booking(BookingCreate):
    id: str = Field(default_factory=lambda: uuid4().hex)
    created_at: datetime = Field(default_factory=datetime.now)


class CheckoutSession(CamelModel):
    id: str
    url: Optional[str] = None
