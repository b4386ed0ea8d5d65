from typing import Dict, Optional

import stripe
import structlog
from fastapi import APIRouter, Depends, Request, Response, status

from natours.dependencies import (
    get_booking_store,
    get_current_user,
    get_tour_store,
    get_user_store,
)
from natours.errors import AppError
from natours.models.booking import Booking, BookingCreate, BookingUpdate, CheckoutSession
from natours.payments import CheckoutGateway, get_checkout_gateway
from natours.pipeline.sanitize import clean_path_params
from natours.responses import success
from natours.routes.tours import get_tour_or_404
from natours.storage import JsonCollection

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/bookings",
    tags=["bookings"],
    dependencies=[Depends(clean_path_params)],
)

# mounted at the site root; its body arrives unparsed
webhook_router = APIRouter(tags=["bookings"])


def start_checkout(
    request: Request,
    tour: Dict,
    user: Dict,
    gateway: CheckoutGateway,
) -> CheckoutSession:
    base_url = str(request.base_url).rstrip("/")
    return gateway.create_checkout_session(
        tour=tour,
        customer_email=user["email"],
        success_url=f"{base_url}/my-tours?alert=booking",
        cancel_url=f"{base_url}/tour/{tour['slug']}",
        image_url=f"{base_url}/img/tours/{tour['imageCover']}" if tour.get("imageCover") else None,
    )


def get_booking_or_404(store: JsonCollection, booking_id: str) -> Dict:
    booking = store.get(booking_id)
    if not booking:
        raise AppError("No booking found with that ID", status.HTTP_404_NOT_FOUND)
    return booking


@router.get("/checkout-session/{tour_id}")
async def get_checkout_session(
    tour_id: str,
    request: Request,
    current_user: Dict = Depends(get_current_user),
    tours: JsonCollection = Depends(get_tour_store),
    gateway: CheckoutGateway = Depends(get_checkout_gateway),
):
    tour = get_tour_or_404(tours, tour_id)
    session = start_checkout(request, tour, current_user, gateway)
    return {"status": "success", "session": session.model_dump()}


@router.get("")
async def get_all_bookings(
    tour: Optional[str] = None,
    user: Optional[str] = None,
    store: JsonCollection = Depends(get_booking_store),
):
    bookings = store.find(
        lambda b: (tour is None or b["tour"] == tour) and (user is None or b["user"] == user)
    )
    return success(bookings)


@router.get("/{booking_id}")
async def get_booking(booking_id: str, store: JsonCollection = Depends(get_booking_store)):
    return success(get_booking_or_404(store, booking_id))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking: BookingCreate,
    store: JsonCollection = Depends(get_booking_store),
    tours: JsonCollection = Depends(get_tour_store),
    users: JsonCollection = Depends(get_user_store),
):
    get_tour_or_404(tours, booking.tour)
    if not users.get(booking.user):
        raise AppError("No user found with that ID", status.HTTP_404_NOT_FOUND)
    return success(store.add(Booking(**booking.model_dump()).to_document()))


@router.patch("/{booking_id}")
async def update_booking(
    booking_id: str,
    booking_update: BookingUpdate,
    store: JsonCollection = Depends(get_booking_store),
):
    get_booking_or_404(store, booking_id)
    return success(store.update(booking_id, booking_update.to_document(exclude_unset=True)))


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_booking(booking_id: str, store: JsonCollection = Depends(get_booking_store)):
    if not store.delete(booking_id):
        raise AppError("No booking found with that ID", status.HTTP_404_NOT_FOUND)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def create_booking_from_session(
    session: stripe.StripeObject,
    bookings: JsonCollection,
    users: JsonCollection,
) -> Optional[Dict]:
    tour_id = getattr(session, "client_reference_id", None)
    email = (getattr(session, "customer_email", None) or "").lower()
    user = users.find_one(lambda u: u["email"].lower() == email)
    price = (getattr(session, "amount_total", None) or 0) / 100
    if not tour_id or user is None or price <= 0:
        logger.warning("webhook_booking_skipped", tour_id=tour_id, customer_email=email)
        return None
    booking = Booking(tour=tour_id, user=user["id"], price=price)
    return bookings.add(booking.to_document())


@webhook_router.post("/webhook-checkout")
async def webhook_checkout(
    request: Request,
    gateway: CheckoutGateway = Depends(get_checkout_gateway),
    bookings: JsonCollection = Depends(get_booking_store),
    users: JsonCollection = Depends(get_user_store),
):
    payload = getattr(request.state, "raw_body", None)
    if payload is None:
        payload = await request.body()
    event = gateway.construct_event(payload, request.headers.get("stripe-signature"))

    if getattr(event, "type", None) == "checkout.session.completed":
        create_booking_from_session(event.data.object, bookings, users)

    return {"received": True}
