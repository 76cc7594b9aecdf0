"""
Menu Store

Owns the category → item → price-tier aggregate of each restaurant.

Write paths:
    - upsert_categories: read-modify-write of the whole aggregate. The menu
      row is always touched so the ORM version check turns a concurrent
      writer into a Conflict instead of a lost update.
    - rename / update item / delete: single filtered UPDATE or DELETE
      statements scoped to the caller's menu, plus an atomic version bump.

Merging is by category name (case-insensitive) and is deliberately not
idempotent: submitting the same items twice appends them twice.
"""

import logging
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from bill_generator.core.exceptions import Conflict, NotFound, ValidationError
from bill_generator.database import utcnow
from bill_generator.models import Menu, MenuCategory, MenuItem, Restaurant
from bill_generator.schemas import CategoryIn, MenuItemIn, MenuItemUpdate

logger = logging.getLogger(__name__)

MENU_NOT_FOUND = "Menu not found"


class MenuStore:
    """Per-restaurant menu aggregate operations."""

    # =========================================================================
    # LOADING
    # =========================================================================

    async def find_menu(
        self,
        db: AsyncSession,
        restaurant_id: int,
        refresh: bool = False,
    ) -> Optional[Menu]:
        """Load the full menu tree, or None if the restaurant has no menu yet."""
        stmt = (
            select(Menu)
            .where(Menu.restaurant_id == restaurant_id)
            .options(selectinload(Menu.categories).selectinload(MenuCategory.items))
        )
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_menu(self, db: AsyncSession, restaurant_id: int) -> Menu:
        """
        Raises:
            NotFound: The restaurant has no menu
        """
        menu = await self.find_menu(db, restaurant_id)
        if menu is None:
            raise NotFound(MENU_NOT_FOUND)
        return menu

    async def _menu_id(self, db: AsyncSession, restaurant_id: int) -> int:
        result = await db.execute(select(Menu.id).where(Menu.restaurant_id == restaurant_id))
        menu_id = result.scalar_one_or_none()
        if menu_id is None:
            raise NotFound(MENU_NOT_FOUND)
        return menu_id

    async def _bump_version(self, db: AsyncSession, menu_id: int) -> None:
        table = Menu.__table__
        await db.execute(
            update(table)
            .where(table.c.id == menu_id)
            .values(version=table.c.version + 1, updated_at=utcnow())
        )

    async def _commit_and_reload(self, db: AsyncSession, restaurant_id: int) -> Menu:
        await db.commit()
        return await self.find_menu(db, restaurant_id, refresh=True)

    # =========================================================================
    # BULK UPSERT
    # =========================================================================

    @staticmethod
    def _build_item(payload: MenuItemIn, position: int) -> MenuItem:
        return MenuItem(
            name=payload.name,
            description=payload.description,
            price_tiers=[tier.model_dump() for tier in payload.price_tiers],
            available=payload.available,
            position=position,
        )

    async def upsert_categories(
        self,
        db: AsyncSession,
        restaurant_id: int,
        categories: list[CategoryIn],
        expected_version: Optional[int] = None,
    ) -> Menu:
        """
        Create the menu or merge categories into it.

        Categories whose name matches an existing one (case-insensitive)
        get the new items appended; others are appended as new categories.
        Payloads are fully validated by their schemas before this runs.

        Args:
            expected_version: When given, the write only proceeds if the
                menu is still at this version (If-Match)

        Raises:
            NotFound: The restaurant does not exist
            Conflict: The menu is not at `expected_version`, or it was
                modified while this merge was in flight
        """
        menu = await self.find_menu(db, restaurant_id)

        if menu is None:
            if expected_version is not None:
                raise Conflict("Menu does not exist yet")
            if await db.get(Restaurant, restaurant_id) is None:
                raise NotFound("Restaurant not found")
            menu = Menu(restaurant_id=restaurant_id)
            db.add(menu)
            created = True
        else:
            if expected_version is not None and menu.version != expected_version:
                raise Conflict(
                    f"Menu version {expected_version} is stale (current is {menu.version})"
                )
            # Always update the menu row so the version check runs on flush
            menu.updated_at = utcnow()
            created = False

        by_name = {category.name.lower(): category for category in menu.categories}
        added_items = 0

        for payload in categories:
            key = payload.name.lower()
            category = by_name.get(key)
            if category is None:
                category = MenuCategory(name=payload.name, position=len(menu.categories))
                menu.categories.append(category)
                by_name[key] = category

            for item_payload in payload.items:
                category.items.append(self._build_item(item_payload, len(category.items)))
                added_items += 1

        try:
            await db.commit()
        except (StaleDataError, IntegrityError):
            # IntegrityError: another request created the menu first
            await db.rollback()
            logger.warning(f"Concurrent menu write rejected for restaurant #{restaurant_id}")
            raise Conflict()

        logger.info(
            f"Menu {'created' if created else 'merged'} for restaurant #{restaurant_id}: "
            f"{len(categories)} categories, {added_items} items"
        )
        return await self.find_menu(db, restaurant_id, refresh=True)

    # =========================================================================
    # TARGETED PATCHES
    # =========================================================================

    async def rename_category(
        self,
        db: AsyncSession,
        restaurant_id: int,
        category_id: str,
        name: str,
    ) -> Menu:
        """
        Raises:
            ValidationError: Another category of this menu already has the name
            NotFound: No menu, or no such category in it
        """
        menu_id = await self._menu_id(db, restaurant_id)

        result = await db.execute(
            update(MenuCategory)
            .where(MenuCategory.id == category_id, MenuCategory.menu_id == menu_id)
            .values(name=name)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            raise NotFound("Menu or category not found")

        clash = await db.execute(
            select(MenuCategory.id).where(
                MenuCategory.menu_id == menu_id,
                MenuCategory.id != category_id,
                func.lower(MenuCategory.name) == name.lower(),
            )
        )
        if clash.first() is not None:
            await db.rollback()
            raise ValidationError(f"Category '{name}' already exists")

        await self._bump_version(db, menu_id)
        logger.info(f"Category {category_id} renamed to '{name}'")
        return await self._commit_and_reload(db, restaurant_id)

    async def update_item(
        self,
        db: AsyncSession,
        restaurant_id: int,
        category_id: str,
        item_id: str,
        patch: MenuItemUpdate,
    ) -> Menu:
        """
        Apply any subset of name, description, price tiers and availability.

        Raises:
            ValidationError: No field supplied
            NotFound: No menu, or the category/item pair does not resolve
        """
        changes = patch.changes()
        if not changes:
            raise ValidationError("No fields provided for update")

        menu_id = await self._menu_id(db, restaurant_id)
        in_category = select(MenuCategory.id).where(
            MenuCategory.id == category_id,
            MenuCategory.menu_id == menu_id,
        )

        result = await db.execute(
            update(MenuItem)
            .where(MenuItem.id == item_id, MenuItem.category_id.in_(in_category))
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            raise NotFound("Menu, category, or item not found")

        await self._bump_version(db, menu_id)
        logger.info(f"Item {item_id} updated: {sorted(changes)}")
        return await self._commit_and_reload(db, restaurant_id)

    async def delete_category(
        self,
        db: AsyncSession,
        restaurant_id: int,
        category_id: str,
    ) -> Menu:
        """
        Remove a category and its items. Sibling categories are untouched.

        Raises:
            NotFound: No menu, or no such category in it
        """
        menu_id = await self._menu_id(db, restaurant_id)
        in_category = select(MenuCategory.id).where(
            MenuCategory.id == category_id,
            MenuCategory.menu_id == menu_id,
        )

        await db.execute(
            delete(MenuItem)
            .where(MenuItem.category_id.in_(in_category))
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(
            delete(MenuCategory)
            .where(MenuCategory.id == category_id, MenuCategory.menu_id == menu_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            raise NotFound("Menu or category not found")

        await self._bump_version(db, menu_id)
        logger.info(f"Category {category_id} deleted from menu #{menu_id}")
        return await self._commit_and_reload(db, restaurant_id)

    async def delete_item(
        self,
        db: AsyncSession,
        restaurant_id: int,
        category_id: str,
        item_id: str,
    ) -> Menu:
        """
        Raises:
            NotFound: No menu, or the category/item pair does not resolve
        """
        menu_id = await self._menu_id(db, restaurant_id)
        in_category = select(MenuCategory.id).where(
            MenuCategory.id == category_id,
            MenuCategory.menu_id == menu_id,
        )

        result = await db.execute(
            delete(MenuItem)
            .where(MenuItem.id == item_id, MenuItem.category_id.in_(in_category))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            raise NotFound("Menu, category, or item not found")

        await self._bump_version(db, menu_id)
        logger.info(f"Item {item_id} deleted from category {category_id}")
        return await self._commit_and_reload(db, restaurant_id)
