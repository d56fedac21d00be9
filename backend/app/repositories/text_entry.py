"""
Text Entry Repository

Queries behind the cached text entry reads. Every list query eagerly loads
the owning user and returns newest entries first.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload
import structlog

from app.models import TextEntry, User
from .base import BaseRepository

logger = structlog.get_logger()


class TextEntryRepository(BaseRepository):
    """Repository for text entries."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, TextEntry)

    def _with_user(self):
        return (
            select(TextEntry)
            .options(joinedload(TextEntry.user))
            .execution_options(populate_existing=True)
        )

    @staticmethod
    def _newest_first(stmt):
        return stmt.order_by(TextEntry.created_at.desc(), TextEntry.id.desc())

    async def _list(self, stmt) -> List[TextEntry]:
        result = await self.session.execute(self._newest_first(stmt))
        return list(result.scalars().unique().all())

    async def find_by_id_with_user(self, entry_id: int) -> Optional[TextEntry]:
        """Get one entry with its user, None when absent."""
        stmt = self._with_user().where(TextEntry.id == entry_id)
        result = await self.session.execute(stmt)
        return result.scalars().unique().one_or_none()

    async def find_all_with_user(self) -> List[TextEntry]:
        return await self._list(self._with_user())

    async def find_by_message_containing(self, term: str) -> List[TextEntry]:
        """Case-insensitive substring match on the message."""
        return await self._list(
            self._with_user().where(TextEntry.message.ilike(f"%{term}%"))
        )

    async def find_by_owner(self, owner: str) -> List[TextEntry]:
        """Case-insensitive substring match on the owner name."""
        return await self._list(
            self._with_user().where(TextEntry.owner.ilike(f"%{owner}%"))
        )

    async def find_by_created_at_between(
        self, start: datetime, end: datetime
    ) -> List[TextEntry]:
        """Entries created within [start, end], both bounds inclusive."""
        return await self._list(
            self._with_user().where(TextEntry.created_at.between(start, end))
        )

    async def find_by_user(self, user: User) -> List[TextEntry]:
        return await self._list(self._with_user().where(TextEntry.user_id == user.id))

    async def count_by_owner_ignore_case(self, owner: str) -> int:
        """Count entries whose owner equals owner, ignoring case."""
        stmt = (
            select(func.count())
            .select_from(TextEntry)
            .where(func.lower(TextEntry.owner) == owner.lower())
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())
