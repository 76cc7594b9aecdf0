"""
SQLAlchemy Database Models

- Restaurant accounts with an embedded subscription plan window
- One Menu aggregate per restaurant (categories → items → price tiers)
- Immutable Orders holding a priced snapshot of every line
"""

import enum
import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    DateTime,
    Text,
    Enum,
    Boolean,
    ForeignKey,
    JSON,
    event,
)
from sqlalchemy.orm import relationship

from bill_generator.database import Base, utcnow


def new_id() -> str:
    """Opaque identifier for categories and items."""
    return str(uuid.uuid4())


class SubscriptionPlanKind(str, enum.Enum):
    """Plan a restaurant is subscribed to."""
    TRIAL = "trial"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PaymentMethod(str, enum.Enum):
    """How the customer settled the bill."""
    CASH = "cash"
    CARD = "card"
    UPI = "upi"


class Restaurant(Base):
    """
    A restaurant account.

    The subscription plan is stored inline; `plan_active` is flipped off
    the first time a login is attempted after `plan_end`.
    """
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # =========================================================================
    # PROFILE
    # =========================================================================
    restaurant_name = Column(String(150), nullable=False)
    address = Column(String(255), nullable=False)
    phone = Column(String(30), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(100), nullable=False)

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================
    plan = Column(
        Enum(SubscriptionPlanKind),
        default=SubscriptionPlanKind.TRIAL,
        nullable=False,
    )
    plan_start = Column(DateTime(timezone=True), nullable=False)
    plan_end = Column(DateTime(timezone=True), nullable=False)
    plan_active = Column(Boolean, default=True, nullable=False)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    menu = relationship("Menu", back_populates="restaurant", uselist=False)
    orders = relationship("Order", back_populates="restaurant")

    @property
    def subscription_plan(self) -> dict:
        return {
            "plan": self.plan,
            "start_date": self.plan_start,
            "end_date": self.plan_end,
            "is_active": self.plan_active,
        }

    def __repr__(self):
        return f"<Restaurant #{self.id} - {self.restaurant_name} - {self.plan.value}>"


class Menu(Base):
    """
    The menu aggregate of one restaurant.

    `version` is maintained by the ORM as an optimistic-concurrency counter:
    an UPDATE issued from a stale copy matches no row and raises
    StaleDataError instead of overwriting a concurrent change.
    """
    __tablename__ = "menus"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(
        Integer,
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    restaurant = relationship("Restaurant", back_populates="menu")
    categories = relationship(
        "MenuCategory",
        back_populates="menu",
        order_by="MenuCategory.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Menu #{self.id} - restaurant {self.restaurant_id} - v{self.version}>"


class MenuCategory(Base):
    __tablename__ = "menu_categories"

    id = Column(String(36), primary_key=True, default=new_id)
    menu_id = Column(
        Integer,
        ForeignKey("menus.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(100), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    menu = relationship("Menu", back_populates="categories")
    items = relationship(
        "MenuItem",
        back_populates="category",
        order_by="MenuItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<MenuCategory {self.id} - {self.name}>"


class MenuItem(Base):
    """
    A sellable dish. `price_tiers` is a list of {"size": str, "amount": float}.
    """
    __tablename__ = "menu_items"

    id = Column(String(36), primary_key=True, default=new_id)
    category_id = Column(
        String(36),
        ForeignKey("menu_categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price_tiers = Column(JSON, nullable=False, default=list)
    available = Column(Boolean, default=True, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    category = relationship("MenuCategory", back_populates="items")

    def find_tier(self, size: str):
        """Return the price tier whose size label matches exactly, or None."""
        for tier in self.price_tiers:
            if tier["size"] == size:
                return tier
        return None

    def __repr__(self):
        return f"<MenuItem {self.id} - {self.name}>"


class Order(Base):
    """
    A priced order.

    `items` holds one snapshot per line (menu_item_id, category_id, name,
    size, quantity, unit_price, line_total) so later menu edits never
    change historical bills. Rows are write-once.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(
        Integer,
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_name = Column(String(100), nullable=False)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    items = Column(JSON, nullable=False)
    payment_method = Column(
        Enum(PaymentMethod),
        default=PaymentMethod.CASH,
        nullable=False,
    )

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(Float, nullable=False)
    tax = Column(Float, nullable=False, default=0.0)
    discount = Column(Float, nullable=False, default=0.0)
    total_amount = Column(Float, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    restaurant = relationship("Restaurant", back_populates="orders")

    def __repr__(self):
        return f"<Order #{self.id} - {self.customer_name} - {self.total_amount}>"


@event.listens_for(Order, "before_update")
def _reject_order_update(mapper, connection, target):
    raise RuntimeError(f"Order #{target.id} is immutable")
