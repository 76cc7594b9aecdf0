"""
                        Services Module

Business logic behind the HTTP API. Services are stateless singletons;
the request's AsyncSession is passed to every call.

Services:
    - accounts: signup, login, profile, plan changes
    - menu_store: menu aggregate create/merge/patch/delete
    - orders: order pricing workflow and order queries
    - receipt: printable bill text
    - excel_manager: process-safe Excel sales ledger

Usage:
    from bill_generator.services import get_menu_store

    menu = await get_menu_store().get_menu(db, ctx.restaurant_id)
"""

import logging
from functools import lru_cache

from bill_generator.services.accounts import AccountService
from bill_generator.services.excel_manager import ExcelManager
from bill_generator.services.menu_store import MenuStore
from bill_generator.services.orders import OrderPricingService

logger = logging.getLogger(__name__)


@lru_cache()
def get_account_service() -> AccountService:
    return AccountService()


@lru_cache()
def get_menu_store() -> MenuStore:
    return MenuStore()


@lru_cache()
def get_order_service() -> OrderPricingService:
    """
    Get the order pricing service.

    Cached so TAX_RATE is read once; call reset_services() after changing
    settings at runtime (tests).
    """
    service = OrderPricingService(get_menu_store())
    logger.info(f"Order pricing service ready (tax_rate={service.tax_rate:.2%})")
    return service


def reset_services() -> None:
    """Clear every cached service instance."""
    get_account_service.cache_clear()
    get_menu_store.cache_clear()
    get_order_service.cache_clear()
    logger.debug("Service caches cleared")


__all__ = [
    "get_account_service",
    "get_menu_store",
    "get_order_service",
    "reset_services",
    "AccountService",
    "MenuStore",
    "OrderPricingService",
    "ExcelManager",
]
