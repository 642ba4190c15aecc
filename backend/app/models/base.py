"""Base SQLModel class exposing a small queryset manager."""

from __future__ import annotations

from typing import Any, ClassVar

from sqlmodel import SQLModel

from app.db.queryset import QuerySet, qs


class ModelManager:
    """Entry point for model-scoped query construction."""

    def __init__(self, model: type[QueryModel]) -> None:
        self.model = model

    def filter(self, *criteria: Any) -> QuerySet[Any]:
        return qs(self.model).filter(*criteria)

    def filter_by(self, **lookup: Any) -> QuerySet[Any]:
        return self.filter(*(getattr(self.model, key) == value for key, value in lookup.items()))


class _ManagerDescriptor:
    def __get__(self, _instance: object, owner: type[QueryModel]) -> ModelManager:
        return ModelManager(owner)


class QueryModel(SQLModel, table=False):
    """SQLModel base with `Model.objects` query helpers."""

    objects: ClassVar[_ManagerDescriptor] = _ManagerDescriptor()
