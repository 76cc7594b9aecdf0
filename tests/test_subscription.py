"""
Tests for plan windows, expiry detection and plan changes.
"""

from datetime import datetime, timedelta, timezone

import pytest
from dateutil.relativedelta import relativedelta
from sqlalchemy import select, update

from bill_generator.core.exceptions import ValidationError
from bill_generator.models import Restaurant, SubscriptionPlanKind
from bill_generator.services.subscription import (
    apply_plan,
    compute_plan_window,
    deactivate_if_expired,
    is_expired,
    parse_plan_kind,
)
from tests.conftest import PASSWORD, parse_timestamp, restaurant_payload


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestPlanWindows:

    def test_trial_is_ten_days(self):
        start = utc(2024, 3, 5, 14, 30)
        begin, end = compute_plan_window(SubscriptionPlanKind.TRIAL, start)
        assert begin == start
        assert end - begin == timedelta(days=10)

    def test_trial_length_override(self):
        start = utc(2024, 3, 5)
        _, end = compute_plan_window(SubscriptionPlanKind.TRIAL, start, trial_days=3)
        assert end == utc(2024, 3, 8)

    @pytest.mark.parametrize("start, expected_end", [
        (utc(2024, 1, 31, 9), utc(2024, 2, 29, 9)),
        (utc(2023, 1, 31, 9), utc(2023, 2, 28, 9)),
        (utc(2024, 3, 15), utc(2024, 4, 15)),
        (utc(2024, 12, 31), utc(2025, 1, 31)),
    ])
    def test_monthly_is_one_calendar_month(self, start, expected_end):
        _, end = compute_plan_window(SubscriptionPlanKind.MONTHLY, start)
        assert end == expected_end

    def test_yearly_from_leap_day(self):
        _, end = compute_plan_window(SubscriptionPlanKind.YEARLY, utc(2024, 2, 29))
        assert end == utc(2025, 2, 28)

    def test_yearly(self):
        _, end = compute_plan_window(SubscriptionPlanKind.YEARLY, utc(2024, 6, 1, 8))
        assert end == utc(2025, 6, 1, 8)


class TestPlanKind:

    @pytest.mark.parametrize("value, kind", [
        ("trial", SubscriptionPlanKind.TRIAL),
        ("Monthly", SubscriptionPlanKind.MONTHLY),
        (" yearly ", SubscriptionPlanKind.YEARLY),
    ])
    def test_valid(self, value, kind):
        assert parse_plan_kind(value) == kind

    @pytest.mark.parametrize("value", ["weekly", "", "free"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError, match="Invalid subscription plan"):
            parse_plan_kind(value)


class TestExpiry:

    def _restaurant(self, end: datetime) -> Restaurant:
        return Restaurant(
            id=1,
            plan=SubscriptionPlanKind.TRIAL,
            plan_start=end - timedelta(days=10),
            plan_end=end,
            plan_active=True,
        )

    def test_not_expired_before_end(self):
        now = utc(2024, 5, 1)
        restaurant = self._restaurant(now + timedelta(seconds=1))
        assert is_expired(restaurant, now) is False
        assert deactivate_if_expired(restaurant, now) is False
        assert restaurant.plan_active is True

    def test_deactivation_is_idempotent(self):
        now = utc(2024, 5, 1)
        restaurant = self._restaurant(now - timedelta(seconds=1))

        assert deactivate_if_expired(restaurant, now) is True
        assert restaurant.plan_active is False
        assert deactivate_if_expired(restaurant, now) is True
        assert restaurant.plan_active is False

    def test_naive_end_is_treated_as_utc(self):
        """SQLite returns timestamps without tzinfo."""
        now = utc(2024, 5, 1)
        restaurant = self._restaurant(datetime(2024, 4, 30))
        assert is_expired(restaurant, now) is True

    def test_apply_plan_reactivates(self):
        now = utc(2024, 5, 1)
        restaurant = self._restaurant(now - timedelta(days=1))
        restaurant.plan_active = False

        apply_plan(restaurant, SubscriptionPlanKind.MONTHLY, now)

        assert restaurant.plan == SubscriptionPlanKind.MONTHLY
        assert restaurant.plan_start == now
        assert restaurant.plan_end == utc(2024, 6, 1)
        assert restaurant.plan_active is True


class TestSubscriptionEndpoints:

    async def _expire(self, db_session, email: str = "owner@spicegarden.in"):
        await db_session.execute(
            update(Restaurant)
            .where(Restaurant.email == email)
            .values(plan_end=datetime.now(timezone.utc) - timedelta(minutes=1))
        )
        await db_session.commit()

    async def _is_active(self, db_session, email: str = "owner@spicegarden.in") -> bool:
        return await db_session.scalar(
            select(Restaurant.plan_active).where(Restaurant.email == email)
        )

    async def test_new_account_trial_window(self, client):
        response = await client.post("/restaurants/create", json=restaurant_payload())
        plan = response.json()["restaurant"]["subscriptionPlan"]

        start = parse_timestamp(plan["startDate"])
        end = parse_timestamp(plan["endDate"])
        assert end - start == timedelta(days=10)

    async def test_login_after_expiry(self, client, db_session):
        """Expired login is 403, flips is_active off, and stays that way."""
        await client.post("/restaurants/create", json=restaurant_payload())
        await self._expire(db_session)
        credentials = {"email": "owner@spicegarden.in", "password": PASSWORD}

        for _ in range(2):
            response = await client.post("/restaurants/login", json=credentials)
            assert response.status_code == 403
            assert response.json()["error"] == "Trial period has ended. Please upgrade your subscription."
            assert "set-cookie" not in response.headers
            assert await self._is_active(db_session) is False

    async def test_wrong_password_after_expiry_is_401(self, client, db_session):
        await client.post("/restaurants/create", json=restaurant_payload())
        await self._expire(db_session)

        response = await client.post(
            "/restaurants/login",
            json={"email": "owner@spicegarden.in", "password": "wrong"},
        )
        assert response.status_code == 401
        assert await self._is_active(db_session) is True

    async def test_upgrade_expired_account(self, client, db_session):
        await client.post("/restaurants/create", json=restaurant_payload())
        await self._expire(db_session)
        credentials = {"email": "owner@spicegarden.in", "password": PASSWORD}
        await client.post("/restaurants/login", json=credentials)

        response = await client.post(
            "/restaurants/subscription",
            json={**credentials, "plan": "monthly"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Subscription plan updated successfully"

        plan = data["subscriptionPlan"]
        assert plan["plan"] == "monthly"
        assert plan["isActive"] is True
        start = parse_timestamp(plan["startDate"])
        end = parse_timestamp(plan["endDate"])
        assert end == start + relativedelta(months=1)

        response = await client.post("/restaurants/login", json=credentials)
        assert response.status_code == 200

    async def test_invalid_plan(self, client):
        await client.post("/restaurants/create", json=restaurant_payload())

        response = await client.post(
            "/restaurants/subscription",
            json={"email": "owner@spicegarden.in", "password": PASSWORD, "plan": "weekly"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid subscription plan"

    async def test_plan_change_requires_credentials(self, client):
        await client.post("/restaurants/create", json=restaurant_payload())

        response = await client.post(
            "/restaurants/subscription",
            json={"email": "owner@spicegarden.in", "password": "wrong", "plan": "yearly"},
        )
        assert response.status_code == 401
