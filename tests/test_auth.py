"""
Tests for restaurant accounts, credentials and sessions.
"""

import time

import jwt
import pytest
from sqlalchemy import func, select

from bill_generator.core.exceptions import Unauthorized
from bill_generator.core.security import (
    create_session_token,
    decode_session_token,
    hash_password,
    verify_password,
)
from bill_generator.models import Restaurant
from tests.conftest import PASSWORD, bearer, restaurant_payload, signup_and_login


class TestPasswordHashing:
    """Test password hashing utilities."""

    def test_hash_password_returns_bcrypt_hash(self):
        hashed = hash_password("mypassword")
        assert hashed.startswith("$2b$")
        assert "mypassword" not in hashed

    def test_verify_password_correct(self):
        hashed = hash_password("mypassword")
        assert verify_password("mypassword", hashed) is True

    def test_verify_password_incorrect(self):
        hashed = hash_password("mypassword")
        assert verify_password("wrongpassword", hashed) is False

    def test_plain_text_hash_is_rejected(self):
        """A stored value that is not a bcrypt hash never verifies."""
        assert verify_password("plaintext", "plaintext") is False

    def test_password_over_72_bytes_never_verifies(self):
        hashed = hash_password("mypassword")
        assert verify_password("x" * 100, hashed) is False
        assert verify_password("é" * 40, hashed) is False


class TestSessionTokens:

    def test_round_trip(self):
        ctx = decode_session_token(create_session_token(42))
        assert ctx.restaurant_id == 42
        assert ctx.expires_at.tzinfo is not None

    def test_expired_token(self):
        token = create_session_token(42, ttl_seconds=-10)
        with pytest.raises(Unauthorized, match="Token has expired"):
            decode_session_token(token)

    def test_foreign_signature(self):
        token = jwt.encode({"sub": "42", "exp": int(time.time()) + 60}, "someone-else", algorithm="HS256")
        with pytest.raises(Unauthorized, match="Invalid token"):
            decode_session_token(token)

    def test_garbage_token(self):
        with pytest.raises(Unauthorized, match="Invalid token"):
            decode_session_token("not-a-jwt")


class TestSignup:

    async def test_create_restaurant(self, client):
        """Signup starts an active trial and never echoes the password."""
        response = await client.post("/restaurants/create", json=restaurant_payload())
        assert response.status_code == 201

        data = response.json()
        assert data["message"] == "Restaurant created successfully"
        restaurant = data["restaurant"]
        assert restaurant["restaurantName"] == "Spice Garden"
        assert restaurant["email"] == "owner@spicegarden.in"
        assert restaurant["subscriptionPlan"]["plan"] == "trial"
        assert restaurant["subscriptionPlan"]["isActive"] is True
        assert "password" not in restaurant
        assert "passwordHash" not in restaurant

    async def test_email_is_normalized(self, client):
        response = await client.post(
            "/restaurants/create",
            json=restaurant_payload("  Owner@SpiceGarden.IN "),
        )
        assert response.status_code == 201
        assert response.json()["restaurant"]["email"] == "owner@spicegarden.in"

    async def test_snake_case_input_is_accepted(self, client):
        payload = restaurant_payload()
        payload["restaurant_name"] = payload.pop("restaurantName")
        response = await client.post("/restaurants/create", json=payload)
        assert response.status_code == 201

    async def test_duplicate_email_rejected(self, client, db_session):
        """A second signup with the same email fails and stores nothing."""
        first = await client.post("/restaurants/create", json=restaurant_payload())
        assert first.status_code == 201

        second = await client.post(
            "/restaurants/create",
            json=restaurant_payload("OWNER@spicegarden.in", restaurantName="Copycat"),
        )
        assert second.status_code == 400
        assert second.json() == {"success": False, "error": "Email is already registered"}

        count = await db_session.scalar(select(func.count()).select_from(Restaurant))
        assert count == 1

    async def test_missing_field(self, client):
        payload = restaurant_payload()
        del payload["phone"]

        response = await client.post("/restaurants/create", json=payload)
        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert "phone" in data["error"]
        assert isinstance(data["detail"], list)

    async def test_blank_name(self, client):
        response = await client.post(
            "/restaurants/create",
            json=restaurant_payload(restaurantName="   "),
        )
        assert response.status_code == 400

    async def test_invalid_email(self, client):
        response = await client.post("/restaurants/create", json=restaurant_payload("not-an-email"))
        assert response.status_code == 400
        assert "email" in response.json()["error"]

    async def test_password_limit_counts_bytes(self, client):
        """40 two-byte characters are 80 bytes, over the bcrypt limit."""
        response = await client.post("/restaurants/create", json=restaurant_payload(password="é" * 40))
        assert response.status_code == 400
        assert response.json()["error"] == "password: Password must be at most 72 bytes"

        response = await client.post("/restaurants/create", json=restaurant_payload(password="é" * 36))
        assert response.status_code == 201


class TestLogin:

    async def test_login_success(self, client):
        await client.post("/restaurants/create", json=restaurant_payload())

        response = await client.post(
            "/restaurants/login",
            json={"email": "owner@spicegarden.in", "password": PASSWORD},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Login successful"
        assert data["token"]
        assert data["restaurant"]["email"] == "owner@spicegarden.in"
        assert "token=" in response.headers["set-cookie"]

    async def test_wrong_password(self, client):
        await client.post("/restaurants/create", json=restaurant_payload())

        response = await client.post(
            "/restaurants/login",
            json={"email": "owner@spicegarden.in", "password": "wrong"},
        )
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid email or password"

    async def test_unknown_email(self, client):
        """Unknown email is indistinguishable from a wrong password."""
        response = await client.post(
            "/restaurants/login",
            json={"email": "ghost@spicegarden.in", "password": PASSWORD},
        )
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid email or password"

    async def test_missing_password(self, client):
        response = await client.post("/restaurants/login", json={"email": "owner@spicegarden.in"})
        assert response.status_code == 400

    async def test_overlong_wrong_password(self, client):
        await client.post("/restaurants/create", json=restaurant_payload())

        response = await client.post(
            "/restaurants/login",
            json={"email": "owner@spicegarden.in", "password": "x" * 100},
        )
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid email or password"


class TestSessionAccess:

    async def test_no_token(self, client):
        response = await client.get("/restaurants/")
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Unauthorized"}

    async def test_invalid_token(self, client):
        response = await client.get("/restaurants/", headers=bearer("garbage"))
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid token"

    async def test_cookie_session(self, client, owner):
        response = await client.get(
            "/restaurants/",
            headers={"Cookie": f"token={owner['token']}"},
        )
        assert response.status_code == 200

    async def test_profile_hides_credentials(self, client, owner):
        response = await client.get("/restaurants/", headers=owner["headers"])
        assert response.status_code == 200

        restaurant = response.json()["restaurant"]
        assert restaurant["restaurantName"] == "Spice Garden"
        assert "email" not in restaurant
        assert "passwordHash" not in restaurant

    async def test_profile_of_deleted_restaurant(self, client):
        """A valid token whose restaurant no longer exists."""
        response = await client.get("/restaurants/", headers=bearer(create_session_token(999)))
        assert response.status_code == 404
        assert response.json()["error"] == "Restaurant not found"

    async def test_logout_clears_cookie(self, client, owner):
        response = await client.post("/restaurants/logout", headers=owner["headers"])
        assert response.status_code == 200
        assert response.json() == {"message": "Logout successful"}
        assert 'token=""' in response.headers["set-cookie"] or "Max-Age=0" in response.headers["set-cookie"]

    async def test_logout_requires_session(self, client):
        response = await client.post("/restaurants/logout")
        assert response.status_code == 401


class TestProfileUpdate:

    async def test_update_name_and_phone(self, client, owner):
        response = await client.put(
            "/restaurants/update",
            json={"restaurantName": "Spice Garden Express", "phone": "080-2222"},
            headers=owner["headers"],
        )
        assert response.status_code == 200
        restaurant = response.json()["restaurant"]
        assert restaurant["restaurantName"] == "Spice Garden Express"
        assert restaurant["phone"] == "080-2222"
        assert restaurant["address"] == "12 MG Road, Bengaluru"

    async def test_empty_patch(self, client, owner):
        response = await client.put("/restaurants/update", json={}, headers=owner["headers"])
        assert response.status_code == 400
        assert response.json()["error"] == "No fields provided for update"

    async def test_email_taken(self, client, owner):
        await signup_and_login(client, "second@curryhouse.in")

        response = await client.put(
            "/restaurants/update",
            json={"email": "second@curryhouse.in"},
            headers=owner["headers"],
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Email is already registered"

    async def test_login_with_new_email(self, client, owner):
        await client.put(
            "/restaurants/update",
            json={"email": "new@spicegarden.in"},
            headers=owner["headers"],
        )

        response = await client.post(
            "/restaurants/login",
            json={"email": "new@spicegarden.in", "password": PASSWORD},
        )
        assert response.status_code == 200
