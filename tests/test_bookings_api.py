import hashlib
import hmac
import json
import time

import pytest
import stripe
from fastapi import status

from conftest import FOREST_HIKER_ID, LOULOU_ID, WEBHOOK_SECRET
from natours.errors import AppError
from natours.payments import CheckoutGateway


def stripe_signature(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def completed_event(email="loulou@example.com", tour_id=FOREST_HIKER_ID, amount=39700) -> bytes:
    return json.dumps({
        "id": "evt_test_1",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_1",
                "client_reference_id": tour_id,
                "customer_email": email,
                "amount_total": amount,
            }
        },
    }).encode()


class TestCheckoutSession:

    def test_requires_login(self, test_client):
        response = test_client.get(f"/api/v1/bookings/checkout-session/{FOREST_HIKER_ID}")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_returns_session(self, logged_in_client, gateway):
        response = logged_in_client.get(f"/api/v1/bookings/checkout-session/{FOREST_HIKER_ID}")
        assert response.status_code == status.HTTP_200_OK

        body = response.json()
        assert body["status"] == "success"
        assert body["session"]["id"] == "cs_test_1"

        request = gateway.sessions[0]
        assert request["customer_email"] == "loulou@example.com"
        assert request["tour"]["id"] == FOREST_HIKER_ID
        assert request["success_url"].endswith("/my-tours?alert=booking")
        assert request["cancel_url"].endswith("/tour/the-forest-hiker")

    def test_unknown_tour(self, logged_in_client):
        response = logged_in_client.get("/api/v1/bookings/checkout-session/missing")
        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestWebhookVerification:

    @pytest.fixture
    def live_gateway(self):
        return CheckoutGateway(secret_key="sk_test_123", webhook_secret=WEBHOOK_SECRET)

    def test_returns_typed_event(self, live_gateway):
        payload = completed_event()
        event = live_gateway.construct_event(payload, stripe_signature(payload))

        assert isinstance(event, stripe.Event)
        assert event.type == "checkout.session.completed"
        assert event.data.object.client_reference_id == FOREST_HIKER_ID

    def test_missing_signature(self, live_gateway):
        with pytest.raises(AppError) as exc_info:
            live_gateway.construct_event(completed_event(), None)
        assert exc_info.value.status_code == status.HTTP_400_BAD_REQUEST

    def test_malformed_payload(self, live_gateway):
        payload = b"{not json"
        with pytest.raises(AppError) as exc_info:
            live_gateway.construct_event(payload, stripe_signature(payload))
        assert exc_info.value.message.startswith("Webhook error:")


class TestWebhook:

    def test_completed_checkout_creates_booking(self, test_client, stores):
        payload = completed_event()
        response = test_client.post(
            "/webhook-checkout",
            content=payload,
            headers={"Content-Type": "application/json", "Stripe-Signature": stripe_signature(payload)},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"received": True}

        bookings = stores["bookings"].all()
        assert len(bookings) == 1
        assert bookings[0]["tour"] == FOREST_HIKER_ID
        assert bookings[0]["user"] == LOULOU_ID
        assert bookings[0]["price"] == 397

    def test_invalid_signature_rejected(self, test_client, stores):
        payload = completed_event()
        response = test_client.post(
            "/webhook-checkout",
            content=payload,
            headers={
                "Content-Type": "application/json",
                "Stripe-Signature": stripe_signature(payload, secret="whsec_wrong"),
            },
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"].startswith("Webhook error:")
        assert stores["bookings"].all() == []

    def test_unknown_customer_is_ignored(self, test_client, stores):
        payload = completed_event(email="stranger@example.com")
        response = test_client.post(
            "/webhook-checkout",
            content=payload,
            headers={"Content-Type": "application/json", "Stripe-Signature": stripe_signature(payload)},
        )

        assert response.status_code == status.HTTP_200_OK
        assert stores["bookings"].all() == []

    def test_webhook_is_not_rate_limited(self, make_client):
        client = make_client(rate_limit_max=1)
        payload = json.dumps({"type": "ping"}).encode()
        headers = {"Content-Type": "application/json", "Stripe-Signature": stripe_signature(payload)}
        responses = [client.post("/webhook-checkout", content=payload, headers=headers) for _ in range(3)]
        assert all(r.status_code == status.HTTP_200_OK for r in responses)


class TestBookingCRUD:

    @pytest.fixture
    def booking(self, test_client):
        response = test_client.post("/api/v1/bookings", json={
            "tour": FOREST_HIKER_ID,
            "user": LOULOU_ID,
            "price": 397,
        })
        assert response.status_code == status.HTTP_201_CREATED
        return response.json()["data"]["data"]

    def test_create_and_get(self, test_client, booking):
        response = test_client.get(f"/api/v1/bookings/{booking['id']}")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["data"]["paid"] is True

    def test_filter_by_user(self, test_client, booking):
        response = test_client.get(f"/api/v1/bookings?user={LOULOU_ID}")
        assert response.json()["results"] == 1

        response = test_client.get("/api/v1/bookings?user=someone-else")
        assert response.json()["results"] == 0

    def test_update(self, test_client, booking):
        response = test_client.patch(f"/api/v1/bookings/{booking['id']}", json={"paid": False})
        assert response.json()["data"]["data"]["paid"] is False

    def test_delete(self, test_client, booking):
        response = test_client.delete(f"/api/v1/bookings/{booking['id']}")
        assert response.status_code == status.HTTP_204_NO_CONTENT

    def test_create_for_unknown_user(self, test_client):
        response = test_client.post("/api/v1/bookings", json={
            "tour": FOREST_HIKER_ID,
            "user": "ghost",
            "price": 397,
        })
        assert response.status_code == status.HTTP_404_NOT_FOUND
