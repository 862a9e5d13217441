"""Chainable query helpers exposed as ``Model.objects`` on SQLModel tables."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import func
from sqlmodel import col, select

if TYPE_CHECKING:
    from sqlmodel import SQLModel
    from sqlmodel.ext.asyncio.session import AsyncSession

ModelT = TypeVar("ModelT", bound="SQLModel")


@dataclass(frozen=True)
class QuerySet(Generic[ModelT]):
    """Immutable query builder; every refinement returns a new instance."""

    model: type[ModelT]
    criteria: tuple[Any, ...] = ()
    ordering: tuple[Any, ...] = ()
    limit_value: int | None = None

    def filter(self, *criteria: Any) -> QuerySet[ModelT]:
        return replace(self, criteria=(*self.criteria, *criteria))

    def filter_by(self, **values: Any) -> QuerySet[ModelT]:
        clauses = tuple(col(getattr(self.model, key)) == value for key, value in values.items())
        return self.filter(*clauses)

    def order_by(self, *ordering: Any) -> QuerySet[ModelT]:
        return replace(self, ordering=(*self.ordering, *ordering))

    def limit(self, value: int) -> QuerySet[ModelT]:
        return replace(self, limit_value=value)

    def _statement(self) -> Any:
        statement = select(self.model)
        if self.criteria:
            statement = statement.where(*self.criteria)
        if self.ordering:
            statement = statement.order_by(*self.ordering)
        if self.limit_value is not None:
            statement = statement.limit(self.limit_value)
        return statement

    async def all(self, session: AsyncSession) -> list[ModelT]:
        result = await session.exec(self._statement())
        return list(result.all())

    async def first(self, session: AsyncSession) -> ModelT | None:
        result = await session.exec(self._statement())
        return result.first()

    async def count(self, session: AsyncSession) -> int:
        statement = select(func.count()).select_from(self.model)
        if self.criteria:
            statement = statement.where(*self.criteria)
        result = await session.exec(statement)
        return int(result.one())


class ModelManager(Generic[ModelT]):
    """Entry point for building querysets against one model."""

    def __init__(self, model: type[ModelT]) -> None:
        self.model = model

    def all(self) -> QuerySet[ModelT]:
        return QuerySet(self.model)

    def by_id(self, obj_id: object) -> QuerySet[ModelT]:
        return self.filter_by(id=obj_id)

    def filter(self, *criteria: Any) -> QuerySet[ModelT]:
        return self.all().filter(*criteria)

    def filter_by(self, **values: Any) -> QuerySet[ModelT]:
        return self.all().filter_by(**values)


class ManagerDescriptor:
    """Class-level descriptor building a manager bound to the accessing model."""

    def __get__(self, instance: object, owner: type[SQLModel]) -> ModelManager[Any]:
        return ModelManager(owner)
