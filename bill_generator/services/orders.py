"""
Order Pricing Workflow

Resolves each requested (category, item, size, quantity) line against the
restaurant's authoritative menu, prices it, and persists a write-once order
holding a snapshot of every line. A single unresolvable line aborts the
whole order before anything is written.

    subtotal = Σ unit_price × quantity
    tax      = round(subtotal × TAX_RATE, 2)   (stored even when 0)
    total    = subtotal + tax − discount       (discount is stored, always 0)
"""

import logging
from dataclasses import dataclass, field, asdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bill_generator.core.config import get_settings
from bill_generator.core.exceptions import NotFound, ValidationError
from bill_generator.models import Menu, Order
from bill_generator.schemas import OrderCreate, OrderLineIn
from bill_generator.services.menu_store import MenuStore

logger = logging.getLogger(__name__)


@dataclass
class PricedLine:
    """One resolved order line, frozen at order time."""
    menu_item_id: str
    category_id: str
    name: str
    size: str
    quantity: int
    unit_price: float
    line_total: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PricedOrder:
    lines: list[PricedLine] = field(default_factory=list)
    subtotal: float = 0.0
    tax: float = 0.0
    discount: float = 0.0
    total: float = 0.0


def parse_order_date(value: Optional[str]) -> Optional[date]:
    """
    Parse the `date` query parameter (YYYY-MM-DD).

    Raises:
        ValidationError: On any other format
    """
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError("Invalid date, expected YYYY-MM-DD")


class OrderPricingService:
    """
    Prices and stores orders.

    Attributes:
        tax_rate: Fraction of the subtotal charged as tax
    """

    def __init__(self, menu_store: MenuStore, tax_rate: Optional[float] = None):
        self.menu_store = menu_store
        self.tax_rate = get_settings().tax_rate if tax_rate is None else tax_rate

    # =========================================================================
    # PRICING
    # =========================================================================

    def price_lines(self, menu: Menu, lines: list[OrderLineIn]) -> PricedOrder:
        """
        Resolve and price every requested line. Pure: touches no storage.

        Raises:
            NotFound: A category, or an item within its category, does not exist
            ValidationError: The item is unavailable or lacks the requested size
        """
        categories = {category.id: category for category in menu.categories}
        priced = PricedOrder()

        for line in lines:
            category = categories.get(line.category_id)
            if category is None:
                raise NotFound(f"Category {line.category_id} not found")

            item = next((i for i in category.items if i.id == line.menu_item_id), None)
            if item is None:
                raise NotFound(f"Item {line.menu_item_id} not found in category {line.category_id}")

            if not item.available:
                raise ValidationError(f"Item '{item.name}' is currently unavailable")

            tier = item.find_tier(line.size)
            if tier is None:
                raise ValidationError(f"Size '{line.size}' not available for item '{item.name}'")

            unit_price = float(tier["amount"])
            priced.lines.append(PricedLine(
                menu_item_id=item.id,
                category_id=category.id,
                name=item.name,
                size=line.size,
                quantity=line.quantity,
                unit_price=unit_price,
                line_total=round(unit_price * line.quantity, 2),
            ))

        priced.subtotal = round(sum(line.line_total for line in priced.lines), 2)
        priced.tax = round(priced.subtotal * self.tax_rate, 2)
        priced.total = round(priced.subtotal + priced.tax - priced.discount, 2)
        return priced

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def create_order(
        self,
        db: AsyncSession,
        restaurant_id: int,
        order_data: OrderCreate,
    ) -> Order:
        """
        Price the request against the current menu and store the order.

        Raises:
            NotFound: No menu, or a referenced category/item is missing
            ValidationError: Unavailable item or unknown size
        """
        menu = await self.menu_store.find_menu(db, restaurant_id)
        if menu is None:
            raise NotFound("Menu not found for this restaurant")

        priced = self.price_lines(menu, order_data.items)

        order = Order(
            restaurant_id=restaurant_id,
            customer_name=order_data.customer_name,
            items=[line.to_dict() for line in priced.lines],
            payment_method=order_data.payment_method,
            subtotal=priced.subtotal,
            tax=priced.tax,
            discount=priced.discount,
            total_amount=priced.total,
        )
        db.add(order)
        await db.commit()
        await db.refresh(order)

        logger.info(
            f"Order #{order.id} created for restaurant #{restaurant_id}: "
            f"{len(priced.lines)} lines, subtotal={priced.subtotal}, total={priced.total}"
        )
        return order

    async def list_orders(
        self,
        db: AsyncSession,
        restaurant_id: int,
        on_date: Optional[date] = None,
    ) -> list[Order]:
        """Caller's orders, newest first, optionally limited to one UTC day."""
        query = (
            select(Order)
            .where(Order.restaurant_id == restaurant_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )

        if on_date is not None:
            day_start = datetime.combine(on_date, time.min, tzinfo=timezone.utc)
            query = query.where(
                Order.created_at >= day_start,
                Order.created_at < day_start + timedelta(days=1),
            )

        result = await db.execute(query)
        return list(result.scalars().all())

    async def get_order(self, db: AsyncSession, restaurant_id: int, order_id: int) -> Order:
        """
        Raises:
            NotFound: No such order for this restaurant
        """
        result = await db.execute(
            select(Order).where(Order.id == order_id, Order.restaurant_id == restaurant_id)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFound(f"Order #{order_id} not found")
        return order
