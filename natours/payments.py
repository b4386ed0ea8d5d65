"""Stripe checkout sessions and webhook verification."""

from functools import lru_cache
from typing import Dict, Optional

import stripe
import structlog
from fastapi import status

from natours.config import get_settings
from natours.errors import AppError
from natours.models.booking import CheckoutSession

logger = structlog.get_logger(__name__)


class CheckoutGateway:
    def __init__(self, secret_key: str, webhook_secret: str, currency: str = "usd"):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency

    def create_checkout_session(
        self,
        *,
        tour: Dict,
        customer_email: str,
        success_url: str,
        cancel_url: str,
        image_url: Optional[str] = None,
    ) -> CheckoutSession:
        product_data = {"name": f"{tour['name']} Tour", "description": tour.get("summary") or ""}
        if image_url:
            product_data["images"] = [image_url]

        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                mode="payment",
                payment_method_types=["card"],
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=customer_email,
                client_reference_id=tour["id"],
                line_items=[{
                    "price_data": {
                        "currency": self.currency,
                        "unit_amount": int(round(float(tour["price"]) * 100)),
                        "product_data": product_data,
                    },
                    "quantity": 1,
                }],
            )
        except stripe.StripeError as exc:
            logger.error("checkout_session_failed", tour_id=tour["id"], error=str(exc))
            raise AppError(
                "Could not create a checkout session. Please try again later.",
                status.HTTP_502_BAD_GATEWAY,
            )

        logger.info("checkout_session_created", tour_id=tour["id"], session_id=session.id)
        return CheckoutSession(id=session.id, url=session.url)

    def construct_event(self, payload: bytes, signature: Optional[str]) -> stripe.Event:
        """Verify the Stripe-Signature header over the raw body and decode the event."""
        try:
            return stripe.Webhook.construct_event(payload, signature or "", self.webhook_secret)
        except (stripe.SignatureVerificationError, ValueError) as exc:
            raise AppError(f"Webhook error: {exc}", status.HTTP_400_BAD_REQUEST)


@lru_cache
def get_checkout_gateway() -> CheckoutGateway:
    settings = get_settings()
    return CheckoutGateway(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        currency=settings.stripe_currency,
    )
