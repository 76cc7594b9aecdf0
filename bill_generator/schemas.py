"""
Pydantic Schemas for Request/Response Validation

JSON bodies use camelCase field names to match the mobile client;
snake_case names are accepted on input as well.
"""

from datetime import datetime
from typing import Annotated, Any, List, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    Field,
    StringConstraints,
)
from pydantic.alias_generators import to_camel

from bill_generator.core.security import MAX_PASSWORD_BYTES
from bill_generator.database import as_utc
from bill_generator.models import PaymentMethod, SubscriptionPlanKind


# Trimmed, non-empty text (names, size labels)
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
ShortText = Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]
Address = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
Phone = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=30)]
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _normalize_email(v: Any) -> Any:
    if isinstance(v, str):
        return v.strip().lower()
    return v


# Emails are stored trimmed and lower-cased
Email = Annotated[EmailStr, BeforeValidator(_normalize_email)]
LoginEmail = Annotated[str, BeforeValidator(_normalize_email), StringConstraints(min_length=1)]


def _check_password_bytes(v: str) -> str:
    if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return v


NewPassword = Annotated[str, StringConstraints(min_length=1), AfterValidator(_check_password_bytes)]


# =============================================================================
# RESTAURANT / SESSION REQUESTS
# =============================================================================

class RestaurantCreate(CamelModel):
    """Signup payload. Every field is required."""
    restaurant_name: Name = Field(..., examples=["Spice Garden"])
    address: Address
    phone: Phone
    email: Email = Field(..., examples=["owner@spicegarden.in"])
    password: NewPassword


class LoginRequest(CamelModel):
    email: LoginEmail
    password: str = Field(..., min_length=1)


class RestaurantUpdate(CamelModel):
    """Partial profile update. Omitted fields are left unchanged."""
    restaurant_name: Optional[Name] = None
    address: Optional[Address] = None
    phone: Optional[Phone] = None
    email: Optional[Email] = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SubscriptionChangeRequest(CamelModel):
    """Plan change. Authenticated by credentials so expired accounts can upgrade."""
    email: LoginEmail
    password: str = Field(..., min_length=1)
    plan: str = Field(..., examples=["monthly"])


# =============================================================================
# MENU REQUESTS
# =============================================================================

class PriceTierIn(CamelModel):
    size: Name = Field(..., examples=["Small"])
    amount: float = Field(..., ge=0, strict=True, allow_inf_nan=False, examples=[20])


class MenuItemIn(CamelModel):
    name: Name = Field(..., examples=["Cola"])
    description: Optional[ShortText] = None
    price_tiers: List[PriceTierIn] = Field(..., alias="price", min_length=1)
    available: bool = True


class CategoryIn(CamelModel):
    name: Name = Field(..., examples=["Drinks"])
    items: List[MenuItemIn] = Field(..., min_length=1)


class MenuUpsertRequest(CamelModel):
    categories: List[CategoryIn] = Field(..., min_length=1)


class CategoryRename(CamelModel):
    name: Name


class MenuItemUpdate(CamelModel):
    """Partial item update. At least one field must be supplied."""
    name: Optional[Name] = None
    description: Optional[ShortText] = None
    price_tiers: Optional[List[PriceTierIn]] = Field(None, alias="price", min_length=1)
    available: Optional[bool] = None

    def changes(self) -> dict[str, Any]:
        """Column values to write, keyed by MenuItem attribute."""
        return self.model_dump(exclude_none=True, by_alias=False)


# =============================================================================
# ORDER REQUESTS
# =============================================================================

class OrderLineIn(CamelModel):
    category_id: str = Field(..., min_length=1)
    menu_item_id: str = Field(..., min_length=1)
    size: Name = Field(..., examples=["Small"])
    quantity: int = Field(..., ge=1, strict=True, examples=[2])


class OrderCreate(CamelModel):
    customer_name: Name = Field(..., examples=["Asha"])
    items: List[OrderLineIn] = Field(..., min_length=1)
    payment_method: PaymentMethod = PaymentMethod.CASH


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class SubscriptionPlanResponse(CamelModel):
    plan: SubscriptionPlanKind
    start_date: UtcDatetime
    end_date: UtcDatetime
    is_active: bool


class RestaurantProfile(CamelModel):
    """Restaurant as shown to its own session (no credentials, no email)."""
    id: int
    restaurant_name: str
    address: str
    phone: str
    subscription_plan: SubscriptionPlanResponse
    created_at: UtcDatetime
    updated_at: Optional[UtcDatetime] = None


class RestaurantResponse(RestaurantProfile):
    email: str


class RestaurantEnvelope(CamelModel):
    message: Optional[str] = None
    restaurant: RestaurantResponse


class ProfileEnvelope(CamelModel):
    restaurant: RestaurantProfile


class LoginResponse(CamelModel):
    message: str
    token: str
    restaurant: RestaurantResponse


class SubscriptionChangeResponse(CamelModel):
    message: str
    subscription_plan: SubscriptionPlanResponse


class PriceTierResponse(CamelModel):
    size: str
    amount: float


class MenuItemResponse(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    price_tiers: List[PriceTierResponse] = Field(..., alias="price")
    available: bool


class CategoryResponse(CamelModel):
    id: str
    name: str
    items: List[MenuItemResponse]


class MenuResponse(CamelModel):
    id: int
    restaurant_id: int
    version: int
    categories: List[CategoryResponse]
    created_at: UtcDatetime
    updated_at: UtcDatetime


class MenuMutationResponse(CamelModel):
    message: str
    menu: MenuResponse


class OrderLineResponse(CamelModel):
    menu_item_id: str
    category_id: str
    name: str
    size: str
    quantity: int
    unit_price: float
    line_total: float


class OrderResponse(CamelModel):
    id: int
    restaurant_id: int
    customer_name: str
    items: List[OrderLineResponse]
    payment_method: PaymentMethod
    subtotal: float
    tax: float
    discount: float
    total_amount: float
    created_at: UtcDatetime


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[Any] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    timestamp: datetime
