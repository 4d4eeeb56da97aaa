"""Unit-of-work helpers shared by the rewards services."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.core.errors import ConstraintConflict


@asynccontextmanager
async def guarded_write(session: AsyncSession, *, guard: str) -> AsyncIterator[AsyncSession]:
    """Apply the writes staged in the block as one all-or-nothing unit.

    A uniqueness violation anywhere in the block (or at commit) rolls the
    whole unit back and raises ``ConstraintConflict`` so the caller can fall
    back to its idempotent read path. Other failures roll back and propagate.
    """

    try:
        yield session
        await session.flush()
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        logger.info("Uniqueness guard rejected write", guard=guard, error=str(exc.orig))
        raise ConstraintConflict(f"{guard} already recorded") from exc
    except BaseException:
        await session.rollback()
        raise


__all__ = ["guarded_write"]
