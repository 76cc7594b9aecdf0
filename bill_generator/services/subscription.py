"""
Subscription Gate

Each restaurant carries one plan window. Trials last a fixed number of 24h
days; monthly and yearly plans end on the same calendar day one month/year
later, clamped to the last day of a shorter month (Jan 31 -> Feb 28/29).

    trial ──> monthly / yearly   (plan change, any direction)
    trial ──> expired            (detected at login once `plan_end` passed)
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from bill_generator.core.config import get_settings
from bill_generator.core.exceptions import ValidationError
from bill_generator.database import as_utc, utcnow
from bill_generator.models import Restaurant, SubscriptionPlanKind

logger = logging.getLogger(__name__)


def parse_plan_kind(value: str) -> SubscriptionPlanKind:
    """
    Validate a requested plan name.

    Raises:
        ValidationError: If the plan is not trial, monthly or yearly
    """
    try:
        return SubscriptionPlanKind((value or "").strip().lower())
    except ValueError:
        raise ValidationError("Invalid subscription plan")


def compute_plan_window(
    kind: SubscriptionPlanKind,
    start: datetime,
    trial_days: Optional[int] = None,
) -> tuple[datetime, datetime]:
    """
    Return (start, end) of a plan beginning at `start`.

    Args:
        kind: Plan being started
        start: Window start (timezone-aware)
        trial_days: Trial length, defaults to TRIAL_DAYS

    Returns:
        Tuple of start and end datetimes
    """
    if kind == SubscriptionPlanKind.TRIAL:
        if trial_days is None:
            trial_days = get_settings().trial_days
        return start, start + timedelta(days=trial_days)
    if kind == SubscriptionPlanKind.MONTHLY:
        return start, start + relativedelta(months=1)
    return start, start + relativedelta(years=1)


def apply_plan(
    restaurant: Restaurant,
    kind: SubscriptionPlanKind,
    now: Optional[datetime] = None,
) -> None:
    """Start a fresh plan window on the restaurant and mark it active."""
    start, end = compute_plan_window(kind, now or utcnow())
    restaurant.plan = kind
    restaurant.plan_start = start
    restaurant.plan_end = end
    restaurant.plan_active = True


def is_expired(restaurant: Restaurant, now: Optional[datetime] = None) -> bool:
    """True once the current time is past the plan's end."""
    return as_utc(restaurant.plan_end) < (now or utcnow())


def deactivate_if_expired(restaurant: Restaurant, now: Optional[datetime] = None) -> bool:
    """
    Flip `plan_active` off when the window has ended.

    Safe to call repeatedly: an already inactive, expired plan stays inactive.

    Returns:
        True if the plan is expired
    """
    if not is_expired(restaurant, now):
        return False
    if restaurant.plan_active:
        logger.info(
            f"Subscription expired for restaurant #{restaurant.id} "
            f"({restaurant.plan.value}, ended {as_utc(restaurant.plan_end).isoformat()})"
        )
    restaurant.plan_active = False
    return True
