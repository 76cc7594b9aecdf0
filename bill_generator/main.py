"""
FastAPI Application Entry Point

Bill Generator API - restaurant menus, priced orders and printable bills.

Endpoints:
    - POST /restaurants/create, /restaurants/login, /restaurants/logout
    - GET /restaurants/, PUT /restaurants/update
    - POST /restaurants/subscription: Change plan (credential-authenticated)
    - POST/GET /menu, PUT/DELETE /menu/{categoryId}[/items/{itemId}]
    - POST/GET /orders, GET /orders/{orderId}[/receipt]
    - GET /health: System health check
"""

import asyncio
import sys
import logging
from datetime import datetime
from typing import Any, List, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Query, Request, Response, Header
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from starlette.exceptions import HTTPException as StarletteHTTPException
import redis

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from bill_generator.core.config import get_settings, setup_logging
from bill_generator.core.exceptions import BillGeneratorError, InternalError, ValidationError
from bill_generator.core.security import RequestContext, get_request_context
from bill_generator.database import get_db, init_db, engine
from bill_generator.schemas import (
    CategoryRename,
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    MenuItemUpdate,
    MenuMutationResponse,
    MenuResponse,
    MenuUpsertRequest,
    MessageResponse,
    OrderCreate,
    OrderResponse,
    ProfileEnvelope,
    RestaurantCreate,
    RestaurantEnvelope,
    RestaurantResponse,
    RestaurantProfile,
    RestaurantUpdate,
    SubscriptionChangeRequest,
    SubscriptionChangeResponse,
    SubscriptionPlanResponse,
)
from bill_generator.services import (
    AccountService,
    MenuStore,
    OrderPricingService,
    get_account_service,
    get_menu_store,
    get_order_service,
)
from bill_generator.services.orders import parse_order_date
from bill_generator.services.receipt import render_receipt
from bill_generator.tasks import queue_order_export

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info(f"   Tax rate: {settings.tax_rate:.2%}")
    logger.info(f"   Ledger export: {'on' if settings.export_orders_enabled else 'off'}")
    logger.info("=" * 60)

    await init_db()

    problems = settings.validate_production_config()
    if problems:
        logger.warning(f"Unsafe production config: {problems}")

    logger.info("Application ready")

    yield  # Application runs

    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Restaurant point-of-sale backend: menus, server-priced orders "
        "and printable bills."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_ttl_seconds,
        httponly=False,  # The mobile client reads it
        secure=settings.session_cookie_secure,
        samesite="lax",
    )


def parse_if_match(value: Optional[str]) -> Optional[int]:
    """Menu version from an If-Match header ("3" or the quoted ETag form)."""
    if value is None:
        return None
    try:
        return int(value.strip().strip('"'))
    except ValueError:
        raise ValidationError("If-Match must be a menu version number")


def menu_mutation(message: str, menu) -> MenuMutationResponse:
    return MenuMutationResponse(message=message, menu=MenuResponse.model_validate(menu))


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to the {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify the database and the export broker are reachable."""

    db_status = "healthy"
    try:
        await db.execute(select(func.now()))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except Exception as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    overall = "operational" if db_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# RESTAURANT & SESSION ENDPOINTS
# =============================================================================

@app.post(
    "/restaurants/create",
    status_code=201,
    response_model=RestaurantEnvelope,
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
    summary="Sign up a restaurant",
)
async def create_restaurant(
    data: RestaurantCreate,
    db: AsyncSession = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
) -> RestaurantEnvelope:
    """Create an account and start its trial. The email must be unused."""
    restaurant = await accounts.create_restaurant(db, data)
    return RestaurantEnvelope(
        message="Restaurant created successfully",
        restaurant=RestaurantResponse.model_validate(restaurant),
    )


@app.post(
    "/restaurants/login",
    response_model=LoginResponse,
    responses={**ERROR_RESPONSES, 403: {"model": ErrorResponse}},
    tags=["Restaurants"],
)
async def login(
    credentials: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
) -> LoginResponse:
    """
    Exchange credentials for a session token.

    401 means bad credentials; 403 means the subscription has ended and the
    client should offer an upgrade instead of a retry.
    """
    token, restaurant = await accounts.login(db, credentials.email, credentials.password)
    set_session_cookie(response, token)
    return LoginResponse(
        message="Login successful",
        token=token,
        restaurant=RestaurantResponse.model_validate(restaurant),
    )


@app.post(
    "/restaurants/logout",
    response_model=MessageResponse,
    tags=["Restaurants"],
)
async def logout(
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
) -> MessageResponse:
    """Clear the session cookie. The token itself stays valid until it expires."""
    response.delete_cookie(
        key=settings.session_cookie_name,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    logger.info(f"Restaurant #{ctx.restaurant_id} logged out")
    return MessageResponse(message="Logout successful")


@app.get(
    "/restaurants/",
    response_model=ProfileEnvelope,
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
)
async def get_restaurant(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
) -> ProfileEnvelope:
    """Profile of the logged-in restaurant (no email, no password)."""
    restaurant = await accounts.get_restaurant(db, ctx.restaurant_id)
    return ProfileEnvelope(restaurant=RestaurantProfile.model_validate(restaurant))


@app.put(
    "/restaurants/update",
    response_model=RestaurantEnvelope,
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
)
async def update_restaurant(
    patch: RestaurantUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
) -> RestaurantEnvelope:
    restaurant = await accounts.update_restaurant(db, ctx.restaurant_id, patch)
    return RestaurantEnvelope(
        message="Restaurant updated successfully",
        restaurant=RestaurantResponse.model_validate(restaurant),
    )


@app.post(
    "/restaurants/subscription",
    response_model=SubscriptionChangeResponse,
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
    summary="Change subscription plan",
)
async def change_subscription(
    data: SubscriptionChangeRequest,
    db: AsyncSession = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
) -> SubscriptionChangeResponse:
    """
    Start a new trial, monthly or yearly window.

    Authenticated with email and password rather than a session so that an
    account whose plan has expired (and therefore cannot log in) can upgrade.
    """
    restaurant = await accounts.change_plan(db, data.email, data.password, data.plan)
    return SubscriptionChangeResponse(
        message="Subscription plan updated successfully",
        subscription_plan=SubscriptionPlanResponse.model_validate(restaurant.subscription_plan),
    )


# =============================================================================
# MENU ENDPOINTS
# =============================================================================

@app.post(
    "/menu",
    status_code=201,
    response_model=MenuResponse,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    tags=["Menu"],
    summary="Create or merge menu categories",
)
async def upsert_menu(
    payload: MenuUpsertRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    menu_store: MenuStore = Depends(get_menu_store),
    if_match: Optional[str] = Header(None),
) -> MenuResponse:
    """
    Categories matching an existing name (case-insensitive) receive the new
    items; the rest are appended. Sending the same items again appends them
    again. Send `If-Match: <version>` to refuse the write if the menu changed.
    """
    menu = await menu_store.upsert_categories(
        db,
        ctx.restaurant_id,
        payload.categories,
        expected_version=parse_if_match(if_match),
    )
    response.headers["ETag"] = f'"{menu.version}"'
    return MenuResponse.model_validate(menu)


@app.get(
    "/menu",
    response_model=MenuResponse,
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def get_menu(
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    menu_store: MenuStore = Depends(get_menu_store),
) -> MenuResponse:
    menu = await menu_store.get_menu(db, ctx.restaurant_id)
    response.headers["ETag"] = f'"{menu.version}"'
    return MenuResponse.model_validate(menu)


@app.put(
    "/menu/{category_id}",
    response_model=MenuMutationResponse,
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def rename_category(
    category_id: str,
    data: CategoryRename,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    menu_store: MenuStore = Depends(get_menu_store),
) -> MenuMutationResponse:
    menu = await menu_store.rename_category(db, ctx.restaurant_id, category_id, data.name)
    return menu_mutation("Category updated successfully", menu)


@app.put(
    "/menu/{category_id}/items/{item_id}",
    response_model=MenuMutationResponse,
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def update_menu_item(
    category_id: str,
    item_id: str,
    patch: MenuItemUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    menu_store: MenuStore = Depends(get_menu_store),
) -> MenuMutationResponse:
    menu = await menu_store.update_item(db, ctx.restaurant_id, category_id, item_id, patch)
    return menu_mutation("Menu item updated successfully", menu)


@app.delete(
    "/menu/{category_id}",
    response_model=MenuMutationResponse,
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def delete_category(
    category_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    menu_store: MenuStore = Depends(get_menu_store),
) -> MenuMutationResponse:
    menu = await menu_store.delete_category(db, ctx.restaurant_id, category_id)
    return menu_mutation("Category deleted successfully", menu)


@app.delete(
    "/menu/{category_id}/items/{item_id}",
    response_model=MenuMutationResponse,
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def delete_menu_item(
    category_id: str,
    item_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    menu_store: MenuStore = Depends(get_menu_store),
) -> MenuMutationResponse:
    menu = await menu_store.delete_item(db, ctx.restaurant_id, category_id, item_id)
    return menu_mutation("Item deleted successfully", menu)


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/orders",
    status_code=201,
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Create Order",
)
async def create_order(
    order_data: OrderCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    orders: OrderPricingService = Depends(get_order_service),
) -> OrderResponse:
    """
    Price the cart against the current menu and store the order.

    Client-side prices are never trusted; every line is re-resolved by
    category id, item id and size label.
    """
    logger.info(f"Creating order for: {order_data.customer_name}")

    order = await orders.create_order(db, ctx.restaurant_id, order_data)

    if settings.export_orders_enabled:
        queue_order_export(order)

    return OrderResponse.model_validate(order)


@app.get(
    "/orders",
    response_model=List[OrderResponse],
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    date: Optional[str] = Query(None, description="UTC day, YYYY-MM-DD"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    orders: OrderPricingService = Depends(get_order_service),
) -> List[OrderResponse]:
    """Orders of the logged-in restaurant, newest first."""
    result = await orders.list_orders(db, ctx.restaurant_id, parse_order_date(date))
    return [OrderResponse.model_validate(order) for order in result]


@app.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order(
    order_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    orders: OrderPricingService = Depends(get_order_service),
) -> OrderResponse:
    order = await orders.get_order(db, ctx.restaurant_id, order_id)
    return OrderResponse.model_validate(order)


@app.get(
    "/orders/{order_id}/receipt",
    response_class=PlainTextResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Printable bill",
)
async def get_receipt(
    order_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    orders: OrderPricingService = Depends(get_order_service),
    accounts: AccountService = Depends(get_account_service),
) -> PlainTextResponse:
    order = await orders.get_order(db, ctx.restaurant_id, order_id)
    restaurant = await accounts.get_restaurant(db, ctx.restaurant_id)
    return PlainTextResponse(render_receipt(order, restaurant.restaurant_name))


# =============================================================================
# ERROR HANDLERS
# =============================================================================

def _describe_validation_error(error: dict[str, Any]) -> str:
    loc = ".".join(
        str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "header")
    )
    msg = str(error.get("msg", "Invalid value")).removeprefix("Value error, ")
    return f"{loc}: {msg}" if loc else msg


@app.exception_handler(BillGeneratorError)
async def domain_exception_handler(request: Request, exc: BillGeneratorError) -> JSONResponse:
    """Map domain errors to their status code and a flat error body."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are client errors (400), not 422."""
    messages = [_describe_validation_error(error) for error in exc.errors()]
    error = ValidationError(messages[0] if messages else None, detail=messages)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    error = InternalError(
        "Internal Server Error",
        detail=str(exc) if settings.debug else "An unexpected error occurred",
    )
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "bill_generator.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )
