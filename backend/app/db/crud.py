from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeVar

from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

ModelT = TypeVar("ModelT", bound=SQLModel)


async def get_by_id(session: AsyncSession, model: type[ModelT], obj_id: Any) -> ModelT | None:
    return await session.get(model, obj_id)


async def create(
    session: AsyncSession,
    model: type[ModelT],
    *,
    refresh: bool = True,
    **data: Any,
) -> ModelT:
    obj = model.model_validate(data)
    return await save(session, obj, refresh=refresh)


async def save(session: AsyncSession, obj: ModelT, *, refresh: bool = True) -> ModelT:
    session.add(obj)
    await session.flush()
    await session.commit()
    if refresh:
        await session.refresh(obj)
    return obj


def apply_updates(obj: ModelT, updates: Mapping[str, Any]) -> ModelT:
    for key, value in updates.items():
        setattr(obj, key, value)
    return obj


async def patch(
    session: AsyncSession,
    obj: ModelT,
    updates: Mapping[str, Any],
    *,
    refresh: bool = True,
) -> ModelT:
    apply_updates(obj, updates)
    return await save(session, obj, refresh=refresh)
