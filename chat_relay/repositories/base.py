"""
Base repository with common CRUD operations.
All repositories extend this class for database access.
"""
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with common CRUD operations.

    Subclasses add the queries specific to their model.
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            db: Async database session
        """
        self.model = model
        self.db = db

    async def create(self, **kwargs) -> ModelType:
        """
        Create a new record.

        Args:
            **kwargs: Model field values

        Returns:
            Created model instance, flushed so its primary key is set

        Example:
            ```python
            message = await repo.create(sender_id=1, receiver_id=2, content="hi")
            ```
        """
        instance = self.model(**kwargs)
        self.db.add(instance)
        await self.db.flush()
        await self.db.refresh(instance)
        return instance

    async def get(self, id: Any) -> Optional[ModelType]:
        """
        Get a record by primary key.

        Returns:
            Model instance or None if not found
        """
        return await self.db.get(self.model, id)
