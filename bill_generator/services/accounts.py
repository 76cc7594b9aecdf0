"""
Restaurant Accounts

Signup, credential checks, session issuance, profile management and plan
changes. Every method takes the request's AsyncSession explicitly.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bill_generator.core.exceptions import (
    NotFound,
    SubscriptionExpired,
    Unauthorized,
    ValidationError,
)
from bill_generator.core.security import (
    create_session_token,
    hash_password,
    verify_password,
)
from bill_generator.database import utcnow
from bill_generator.models import Restaurant, SubscriptionPlanKind
from bill_generator.schemas import RestaurantCreate, RestaurantUpdate
from bill_generator.services.subscription import (
    apply_plan,
    deactivate_if_expired,
    parse_plan_kind,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
EMAIL_TAKEN = "Email is already registered"


class AccountService:
    """Restaurant account lifecycle."""

    async def _find_by_email(self, db: AsyncSession, email: str):
        result = await db.execute(select(Restaurant).where(Restaurant.email == email))
        return result.scalar_one_or_none()

    async def create_restaurant(self, db: AsyncSession, data: RestaurantCreate) -> Restaurant:
        """
        Register a restaurant and start its trial window.

        Raises:
            ValidationError: If the email is already registered
        """
        if await self._find_by_email(db, data.email) is not None:
            raise ValidationError(EMAIL_TAKEN)

        restaurant = Restaurant(
            restaurant_name=data.restaurant_name,
            address=data.address,
            phone=data.phone,
            email=data.email,
            password_hash=hash_password(data.password),
        )
        apply_plan(restaurant, SubscriptionPlanKind.TRIAL)

        db.add(restaurant)
        try:
            await db.commit()
        except IntegrityError:
            # Lost a race against a concurrent signup with the same email
            await db.rollback()
            raise ValidationError(EMAIL_TAKEN)
        await db.refresh(restaurant)

        logger.info(f"Restaurant #{restaurant.id} created ({restaurant.restaurant_name})")
        return restaurant

    async def authenticate(self, db: AsyncSession, email: str, password: str) -> Restaurant:
        """
        Check credentials without looking at the subscription.

        Unknown email and wrong password produce the same error so callers
        cannot probe which emails are registered.

        Raises:
            Unauthorized: On any credential mismatch
        """
        restaurant = await self._find_by_email(db, email)
        if restaurant is None or not verify_password(password, restaurant.password_hash):
            logger.info("Login rejected: invalid credentials")
            raise Unauthorized(INVALID_CREDENTIALS)
        return restaurant

    async def login(self, db: AsyncSession, email: str, password: str) -> tuple[str, Restaurant]:
        """
        Verify credentials and the plan window, then issue a session token.

        Returns:
            (token, restaurant)

        Raises:
            Unauthorized: Bad credentials
            SubscriptionExpired: Plan window has ended; the plan is persisted
                as inactive before raising
        """
        restaurant = await self.authenticate(db, email, password)

        if deactivate_if_expired(restaurant):
            await db.commit()
            raise SubscriptionExpired()

        token = create_session_token(restaurant.id)
        logger.info(f"Restaurant #{restaurant.id} logged in")
        return token, restaurant

    async def get_restaurant(self, db: AsyncSession, restaurant_id: int) -> Restaurant:
        restaurant = await db.get(Restaurant, restaurant_id)
        if restaurant is None:
            raise NotFound("Restaurant not found")
        return restaurant

    async def update_restaurant(
        self,
        db: AsyncSession,
        restaurant_id: int,
        patch: RestaurantUpdate,
    ) -> Restaurant:
        """
        Apply a partial profile update.

        Raises:
            ValidationError: Empty patch, or the new email belongs to another account
            NotFound: Restaurant does not exist
        """
        changes = patch.changes()
        if not changes:
            raise ValidationError("No fields provided for update")

        restaurant = await self.get_restaurant(db, restaurant_id)

        new_email = changes.get("email")
        if new_email and new_email != restaurant.email:
            if await self._find_by_email(db, new_email) is not None:
                raise ValidationError(EMAIL_TAKEN)

        for field, value in changes.items():
            setattr(restaurant, field, value)
        restaurant.updated_at = utcnow()

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ValidationError(EMAIL_TAKEN)
        await db.refresh(restaurant)

        logger.info(f"Restaurant #{restaurant.id} updated: {sorted(changes)}")
        return restaurant

    async def change_plan(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        plan: str,
    ) -> Restaurant:
        """
        Start a new plan window for the restaurant owning these credentials.

        Raises:
            ValidationError: Unknown plan kind
            Unauthorized: Bad credentials
        """
        kind = parse_plan_kind(plan)
        restaurant = await self.authenticate(db, email, password)

        apply_plan(restaurant, kind)
        await db.commit()
        await db.refresh(restaurant)

        logger.info(
            f"Restaurant #{restaurant.id} switched to {kind.value} plan "
            f"(ends {restaurant.plan_end.isoformat()})"
        )
        return restaurant
