"""
Client side of the booking flow.

    with httpx.Client(base_url="http://localhost:8000", cookies={"user_id": uid}) as client:
        book_tour(tour_id, client=client)

asks the API for a checkout session and sends the customer to the Stripe
hosted payment page. Failures are reported through ``alert``; nothing is
returned and nothing is retried.
"""

import webbrowser
from typing import Callable

import httpx
import structlog

from natours.config import get_settings

logger = structlog.get_logger(__name__)

Redirect = Callable[[str], None]
Alert = Callable[[str, str], None]


def show_alert(kind: str, message: str) -> None:
    log = logger.error if kind == "error" else logger.info
    log("alert", kind=kind, message=message)


def redirect_to_checkout(session_id: str) -> None:
    url = f"{get_settings().checkout_base_url.rstrip('/')}/{session_id}"
    webbrowser.open(url)


def book_tour(
    tour_id: str,
    *,
    client: httpx.Client,
    redirect: Redirect = redirect_to_checkout,
    alert: Alert = show_alert,
) -> None:
    try:
        response = client.get(f"/api/v1/bookings/checkout-session/{tour_id}")
        response.raise_for_status()
        session_id = response.json()["session"]["id"]
        redirect(session_id)
    except Exception as err:
        alert("error", str(err))
