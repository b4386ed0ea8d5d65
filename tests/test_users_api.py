import pytest
from fastapi import status

from conftest import ADMIN_ID, LOULOU_ID


# TEST: GET /api/v1/users
def test_get_all_users(test_client):
    """Test retrieving all active users"""
    response = test_client.get("/api/v1/users")

    assert response.status_code == status.HTTP_200_OK
    names = [user["name"] for user in response.json()["data"]["data"]]
    assert "Jonas Schmedtmann" in names
    assert "Lourdes Browning" in names


# TEST: GET /api/v1/users/{user_id}
def test_get_user_by_id(test_client):
    response = test_client.get(f"/api/v1/users/{ADMIN_ID}")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["data"]["email"] == "admin@natours.io"


def test_get_user_not_found(test_client):
    response = test_client.get("/api/v1/users/nobody")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert "no user found" in response.json()["message"].lower()


# TEST: GET /api/v1/users/me
def test_me_requires_login(test_client):
    response = test_client.get("/api/v1/users/me")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["message"] == "You are not logged in! Please log in to get access."


def test_me_with_session_cookie(logged_in_client):
    response = logged_in_client.get("/api/v1/users/me")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["data"]["id"] == LOULOU_ID


# TEST: POST /api/v1/users
def test_create_user(test_client):
    response = test_client.post("/api/v1/users", json={
        "name": "Alice Johnson",
        "email": "Alice.Johnson@example.com",
    })

    assert response.status_code == status.HTTP_201_CREATED
    user = response.json()["data"]["data"]
    assert user["email"] == "alice.johnson@example.com"
    assert user["role"] == "user"
    assert user["active"] is True


def test_create_user_duplicate_email(test_client):
    response = test_client.post("/api/v1/users", json={
        "name": "Jonas Again",
        "email": "ADMIN@natours.io",
    })

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "already in use" in response.json()["message"]


@pytest.mark.parametrize("payload", [
    {"name": "No Email"},
    {"name": "Bad Email", "email": "not-an-email"},
    {"name": "Bad Role", "email": "role@example.com", "role": "emperor"},
])
def test_create_user_invalid(test_client, payload):
    response = test_client.post("/api/v1/users", json=payload)

    assert response.status_code == status.HTTP_400_BAD_REQUEST


# TEST: PATCH /api/v1/users/{user_id}
def test_update_user(test_client):
    response = test_client.patch(f"/api/v1/users/{LOULOU_ID}", json={"name": "Lou Browning"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["data"]["name"] == "Lou Browning"


def test_update_user_email_taken(test_client):
    response = test_client.patch(f"/api/v1/users/{LOULOU_ID}", json={"email": "admin@natours.io"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_update_user_no_fields(test_client):
    response = test_client.patch(f"/api/v1/users/{LOULOU_ID}", json={})

    assert response.status_code == status.HTTP_400_BAD_REQUEST


# TEST: DELETE /api/v1/users/{user_id}
def test_delete_user_deactivates(test_client, stores):
    response = test_client.delete(f"/api/v1/users/{LOULOU_ID}")

    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert stores["users"].get(LOULOU_ID)["active"] is False

    listing = test_client.get("/api/v1/users").json()["data"]["data"]
    assert LOULOU_ID not in [user["id"] for user in listing]


def test_deactivated_user_cannot_use_session(logged_in_client, stores):
    stores["users"].update(LOULOU_ID, {"active": False})
    response = logged_in_client.get("/api/v1/users/me")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
