"""
Base Repository

Thin async data access shared by the concrete repositories. Every repository
works inside a session owned by the caller; nothing here commits.
"""

from typing import Type

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.models import Base

logger = structlog.get_logger()


class BaseRepository:
    """
    Base repository bound to one model and one session.

    Subclasses name their model directly and add the queries they need.
    """

    def __init__(self, session: AsyncSession, model: Type[Base]):
        """
        Initialize repository with strict input validation.

        Args:
            session: AsyncSession for database operations
            model: SQLAlchemy model class

        Raises:
            TypeError: If session is not AsyncSession or model is invalid
        """
        if not isinstance(session, AsyncSession):
            raise TypeError(
                f"session must be AsyncSession instance, got {type(session).__name__}"
            )

        if not model or not hasattr(model, "__tablename__"):
            raise TypeError(
                f"model must be valid SQLAlchemy model with __tablename__, got {type(model).__name__}"
            )

        self.session = session
        self.model = model

    async def count(self) -> int:
        """Count all rows of the model."""
        stmt = select(func.count()).select_from(self.model)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def save(self, obj: Base) -> Base:
        """
        Add or update an entity and flush it.

        Returns:
            The flushed entity with its primary key populated

        Raises:
            ValueError: If obj is None
            TypeError: If obj is not a model instance
        """
        if obj is None:
            raise ValueError("Entity object is required (cannot be None)")

        if not isinstance(obj, self.model):
            raise TypeError(
                f"Entity must be {self.model.__name__} instance, got {type(obj).__name__}"
            )

        try:
            self.session.add(obj)
            await self.session.flush()

            logger.debug(
                "Repository: Entity saved",
                model=self.model.__name__,
                entity_id=obj.id,
            )
            return obj

        except Exception as e:
            logger.error(
                "Repository: Failed to save entity",
                model=self.model.__name__,
                error=str(e),
                exc_info=True,
            )
            raise

    async def delete_by_id(self, id: int) -> bool:
        """
        Hard delete entity by primary key.

        Returns:
            True if a row was deleted, False if none matched
        """
        if id is None:
            raise ValueError("Entity id is required (cannot be None)")

        stmt = delete(self.model).where(self.model.id == id)
        result = await self.session.execute(stmt)
        deleted = result.rowcount > 0

        if deleted:
            logger.info(
                "Repository: Entity deleted", model=self.model.__name__, entity_id=id
            )
        else:
            logger.warning(
                "Repository: Entity not found for deletion",
                model=self.model.__name__,
                entity_id=id,
            )
        return deleted
