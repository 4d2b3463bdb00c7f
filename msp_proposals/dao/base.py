"""
Shared Data Access Object (DAO) behaviour.

WHAT: The handful of queries every pricing table needs: insert, primary
key lookup and filtered counting.

WHY: Services never build SQL themselves. They ask a DAO, so the pricing
and approval rules stay free of query code and can be tested on plain
objects.
"""

from typing import Any, Generic, Optional, Type, TypeVar
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from msp_proposals.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseDAO(Generic[ModelType]):
    """
    Generic DAO bound to one model class and one session.

    Filters are passed as keyword arguments (``status=ProposalStatus.SENT``);
    names that are not columns of the model are ignored.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    def _apply_filters(self, query: Select, filters: dict) -> Select:
        columns = self.model.__table__.columns
        for name, value in filters.items():
            if name in columns:
                query = query.where(columns[name] == value)
        return query

    async def create(self, **values: Any) -> ModelType:
        """
        Insert a row and flush so its id and defaults are populated.

        The transaction is left open; the request's session commits it.
        """
        instance = self.model(**values)
        self.session.add(instance)
        await self.session.flush()
        return instance

    async def get_by_id(self, id: int) -> Optional[ModelType]:
        return await self.session.get(self.model, id)

    async def count(self, **filters: Any) -> int:
        """Number of rows matching the filters (list pagination totals)."""
        query = self._apply_filters(select(func.count()).select_from(self.model), filters)
        return int((await self.session.execute(query)).scalar_one())

    async def exists(self, **filters: Any) -> bool:
        query = self._apply_filters(select(self.model.id), filters).limit(1)
        return (await self.session.execute(query)).first() is not None
