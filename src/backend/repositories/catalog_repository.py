"""
Read-only access to events, categories and nominees.

The voting core never writes these tables.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.catalog import Category, Event, Nominee


@dataclass(frozen=True)
class NomineeContext:
    """A nominee together with the category and event it belongs to."""

    nominee: Nominee
    category: Category
    event: Event


class CatalogRepository:
    """Repository for catalog lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_nominee(self, nominee_id: str) -> Optional[Nominee]:
        result = await self.db.execute(select(Nominee).where(Nominee.id == nominee_id))
        return result.scalar_one_or_none()

    async def get_nominee_by_code(self, code: str) -> Optional[Nominee]:
        """Nominee codes are matched case-insensitively."""
        result = await self.db.execute(
            select(Nominee).where(func.upper(Nominee.code) == code.strip().upper())
        )
        return result.scalar_one_or_none()

    async def get_category(self, category_id: str) -> Optional[Category]:
        result = await self.db.execute(select(Category).where(Category.id == category_id))
        return result.scalar_one_or_none()

    async def get_event(self, event_id: str) -> Optional[Event]:
        result = await self.db.execute(select(Event).where(Event.id == event_id))
        return result.scalar_one_or_none()

    async def _resolve(self, nominee: Optional[Nominee]) -> Optional[NomineeContext]:
        if nominee is None:
            return None
        category = await self.get_category(nominee.category_id)
        if category is None:
            return None
        event = await self.get_event(category.event_id)
        if event is None:
            return None
        return NomineeContext(nominee=nominee, category=category, event=event)

    async def resolve_nominee_code(self, code: str) -> Optional[NomineeContext]:
        """Resolve nominee code -> category -> event; None if any link is missing."""
        return await self._resolve(await self.get_nominee_by_code(code))

    async def resolve_nominee_id(self, nominee_id: str) -> Optional[NomineeContext]:
        return await self._resolve(await self.get_nominee(nominee_id))
