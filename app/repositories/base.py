# ============================================================================
# Generic Repository
# ============================================================================
"""
Uniform data-access layer shared by every entity repository.

Each operation opens its own session from the injected session factory and
commits before returning, so every call is atomic on its own and nothing is
held open between calls. Store errors (integrity, connection, timeout) are
propagated unchanged; retry policy belongs to the caller.

Filters are either a mapping of field name to value or SQLAlchemy boolean
expressions::

    await repo.find_one({"email": "a@b.com"})
    await repo.find({"role": [UserRole.TUTOR, UserRole.ADMIN]})   # IN
    await repo.count(User.created_at >= cutoff)
"""
import asyncio
import math
import uuid
from dataclasses import dataclass
from typing import (
    Any, Dict, Generic, Iterable, List, Mapping, Optional, Sequence, Type, TypeVar, Union
)

from sqlalchemy import ColumnElement, Select, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import InstrumentedAttribute
from sqlalchemy.sql.base import ExecutableOption

from app.core.database import Base
from app.core.exceptions import ValidationError

ModelT = TypeVar("ModelT", bound=Base)

Filter = Union[Mapping[str, Any], ColumnElement, Iterable[ColumnElement], None]
Sort = Union[Mapping[str, int], Sequence[ColumnElement], None]
LoadOptions = Optional[Sequence[ExecutableOption]]


@dataclass
class PaginationResult(Generic[ModelT]):
    items: List[ModelT]
    total: int
    page: int
    limit: int
    total_pages: int


@dataclass
class UpdateResult:
    matched_count: int
    modified_count: int


class BaseRepository(Generic[ModelT]):
    """CRUD, pagination and aggregation over a single mapped class."""

    model: Type[ModelT]
    immutable_fields: frozenset = frozenset()
    default_sort: Mapping[str, int] = {"created_at": -1}

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    # =========================================================================
    # Query building
    # =========================================================================
    def _column(self, field: str) -> InstrumentedAttribute:
        attr = getattr(self.model, field, None)
        if not isinstance(attr, InstrumentedAttribute):
            raise ValidationError(f"Unknown field '{field}' for {self.model.__name__}")
        return attr

    @property
    def _pk(self) -> InstrumentedAttribute:
        return self._column("id")

    def _conditions(self, filters: Filter) -> List[ColumnElement]:
        if filters is None:
            return []
        if isinstance(filters, Mapping):
            conditions = []
            for field, value in filters.items():
                column = self._column(field)
                if value is None:
                    conditions.append(column.is_(None))
                elif isinstance(value, (list, tuple, set, frozenset)):
                    conditions.append(column.in_(list(value)))
                else:
                    conditions.append(column == value)
            return conditions
        if isinstance(filters, ColumnElement):
            return [filters]
        return list(filters)

    def _order_by(self, sort: Sort) -> List[ColumnElement]:
        sort = self.default_sort if sort is None else sort
        if isinstance(sort, Mapping):
            return [
                self._column(field).desc() if direction < 0 else self._column(field).asc()
                for field, direction in sort.items()
            ]
        return list(sort)

    def _select(self, filters: Filter = None, options: LoadOptions = None) -> Select:
        stmt = select(self.model).where(*self._conditions(filters))
        if options:
            stmt = stmt.options(*options)
        return stmt

    def _coerce_id(self, id: Union[str, uuid.UUID]) -> Optional[uuid.UUID]:
        if isinstance(id, uuid.UUID):
            return id
        try:
            return uuid.UUID(str(id))
        except ValueError:
            return None

    def _normalize(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Hook for write-time normalization (create and update)."""
        return values

    def _prepare_patch(self, patch: Mapping[str, Any]) -> Dict[str, Any]:
        values = dict(patch)
        for field in values:
            self._column(field)
            if field in self.immutable_fields:
                raise ValidationError(f"Field '{field}' cannot be changed")
        return self._normalize(values)

    # =========================================================================
    # Create
    # =========================================================================
    async def create(self, data: Mapping[str, Any]) -> ModelT:
        instance = self.model(**self._normalize(dict(data)))
        async with self.session_maker() as session:
            session.add(instance)
            await session.commit()
        return instance

    async def create_many(self, data: Iterable[Mapping[str, Any]]) -> List[ModelT]:
        instances = [self.model(**self._normalize(dict(item))) for item in data]
        async with self.session_maker() as session:
            session.add_all(instances)
            await session.commit()
        return instances

    # =========================================================================
    # Read
    # =========================================================================
    async def find_one(self, filters: Filter, options: LoadOptions = None) -> Optional[ModelT]:
        async with self.session_maker() as session:
            result = await session.execute(self._select(filters, options).limit(1))
            return result.scalars().first()

    async def find_by_id(self, id: Union[str, uuid.UUID], options: LoadOptions = None) -> Optional[ModelT]:
        pk = self._coerce_id(id)
        if pk is None:
            return None
        async with self.session_maker() as session:
            return await session.get(self.model, pk, options=options)

    async def find(
        self,
        filters: Filter = None,
        options: LoadOptions = None,
        sort: Sort = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[ModelT]:
        stmt = self._select(filters, options).order_by(*self._order_by(sort))
        if skip:
            stmt = stmt.offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def find_paginated(
        self,
        filters: Filter = None,
        page: int = 1,
        limit: int = 10,
        sort: Sort = None,
        options: LoadOptions = None,
    ) -> PaginationResult[ModelT]:
        if page < 1 or limit < 1:
            raise ValidationError("Page and limit must be positive integers")

        skip = (page - 1) * limit
        items, total = await asyncio.gather(
            self.find(filters, options=options, sort=sort, skip=skip, limit=limit),
            self.count(filters),
        )
        return PaginationResult(
            items=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )

    # =========================================================================
    # Update
    # =========================================================================
    async def update_one(
        self,
        filters: Filter,
        patch: Mapping[str, Any],
        options: LoadOptions = None,
    ) -> Optional[ModelT]:
        """
        Apply ``patch`` to the first row matching ``filters``.

        Matching and writing happen in a single UPDATE statement, so a filter
        on the current value of a column acts as a compare-and-set. Returns
        the row as it is after the update, or None when nothing matched.
        """
        values = self._prepare_patch(patch)
        conditions = self._conditions(filters)
        target = (
            select(self._pk)
            .where(*conditions)
            .limit(1)
            .correlate(None)
            .scalar_subquery()
        )
        # Conditions are repeated on the outer statement so a concurrent writer
        # that changed the row first makes this update match nothing
        stmt = (
            update(self.model)
            .where(self._pk == target, *conditions)
            .values(**values)
            .returning(self._pk)
            .execution_options(synchronize_session=False)
        )
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            updated_id = result.scalar_one_or_none()
            if updated_id is None:
                await session.rollback()
                return None
            instance = await session.get(
                self.model, updated_id, options=options, populate_existing=True
            )
            await session.commit()
            return instance

    async def update_by_id(
        self,
        id: Union[str, uuid.UUID],
        patch: Mapping[str, Any],
        options: LoadOptions = None,
    ) -> Optional[ModelT]:
        pk = self._coerce_id(id)
        if pk is None:
            return None
        return await self.update_one({"id": pk}, patch, options=options)

    async def update_many(self, filters: Filter, patch: Mapping[str, Any]) -> UpdateResult:
        values = self._prepare_patch(patch)
        stmt = (
            update(self.model)
            .where(*self._conditions(filters))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            await session.commit()
        # SQL reports rows touched; every matched row is rewritten
        return UpdateResult(matched_count=result.rowcount, modified_count=result.rowcount)

    async def increment(
        self,
        filters: Filter,
        field: str,
        value: Union[int, float] = 1,
    ) -> Optional[ModelT]:
        column = self._column(field)
        return await self.update_one(filters, {field: column + value})

    async def decrement(
        self,
        filters: Filter,
        field: str,
        value: Union[int, float] = 1,
    ) -> Optional[ModelT]:
        return await self.increment(filters, field, -value)

    # =========================================================================
    # Delete
    # =========================================================================
    async def delete_one(self, filters: Filter) -> Optional[ModelT]:
        async with self.session_maker() as session:
            result = await session.execute(self._select(filters).limit(1))
            instance = result.scalars().first()
            if instance is None:
                return None
            await session.delete(instance)
            await session.commit()
            return instance

    async def delete_by_id(self, id: Union[str, uuid.UUID]) -> Optional[ModelT]:
        pk = self._coerce_id(id)
        if pk is None:
            return None
        return await self.delete_one({"id": pk})

    async def delete_many(self, filters: Filter) -> int:
        stmt = (
            delete(self.model)
            .where(*self._conditions(filters))
            .execution_options(synchronize_session=False)
        )
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount

    # =========================================================================
    # Aggregates
    # =========================================================================
    async def count(self, filters: Filter = None) -> int:
        stmt = select(func.count()).select_from(self.model).where(*self._conditions(filters))
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            return result.scalar_one()

    async def exists(self, filters: Filter) -> bool:
        # Stops at the first match
        stmt = select(self._pk).where(*self._conditions(filters)).limit(1)
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            return result.first() is not None

    async def distinct(self, field: str, filters: Filter = None) -> List[Any]:
        column = self._column(field)
        stmt = select(column).where(*self._conditions(filters)).distinct().order_by(column)
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def aggregate(self, statement: Select) -> List[Dict[str, Any]]:
        """Run an arbitrary SELECT (grouping, joins, window functions)."""
        async with self.session_maker() as session:
            result = await session.execute(statement)
            return [dict(row) for row in result.mappings().all()]
