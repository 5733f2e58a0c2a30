"""Base repository shared by the booking aggregates."""

import logging
from typing import Generic, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.database.models import Base
from booking_core.exceptions import DatabaseError

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Lookup by primary key and insert for one mapped model.

    Query methods specific to an aggregate live on the subclasses. Every
    `SQLAlchemyError` leaves a repository as `DatabaseError`; transaction
    control stays with the caller (request session or task context).
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    @property
    def _name(self) -> str:
        return self.model.__name__

    async def get_by_id(self, id: str) -> Optional[ModelType]:
        try:
            result = await self.session.execute(select(self.model).where(self.model.id == id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting {self._name} {id}: {e}")
            raise DatabaseError(f"Failed to retrieve {self._name}") from e

    async def create(self, **values) -> ModelType:
        """
        Insert a row and return it with database defaults loaded.

        Raises:
            DatabaseError: If the insert fails (constraint violation included)
        """
        instance = self.model(**values)
        try:
            self.session.add(instance)
            await self.session.flush()
            await self.session.refresh(instance)
        except SQLAlchemyError as e:
            logger.error(f"Error creating {self._name}: {e}")
            raise DatabaseError(f"Failed to create {self._name}") from e
        logger.debug(f"Created {self._name} {instance.id}")
        return instance
