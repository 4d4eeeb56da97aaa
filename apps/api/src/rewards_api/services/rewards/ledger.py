"""Points ledger derived from the award event log."""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.models.rewards import AwardEvent, AwardEventKind


class PointsLedger:
    """Read balances and append award events.

    Balances are always summed from ``award_events``; there is no stored
    counter to drift. ``append_award`` only stages the event in the caller's
    unit of work so the guard row and its award commit together.
    """

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def get_balance(self, user_id: UUID) -> int:
        stmt = select(func.coalesce(func.sum(AwardEvent.amount), 0)).where(AwardEvent.user_id == user_id)
        result = await self._db.execute(stmt)
        return int(result.scalar_one() or 0)

    async def balances_for(self, user_ids: Iterable[UUID]) -> dict[UUID, int]:
        """Rebuild balances for several users from the event log in one query."""

        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        stmt = (
            select(AwardEvent.user_id, func.coalesce(func.sum(AwardEvent.amount), 0))
            .where(AwardEvent.user_id.in_(ids))
            .group_by(AwardEvent.user_id)
        )
        result = await self._db.execute(stmt)
        balances = {user_id: 0 for user_id in ids}
        for user_id, total in result.all():
            balances[user_id] = int(total or 0)
        return balances

    async def append_award(
        self,
        user_id: UUID,
        *,
        amount: int,
        kind: AwardEventKind,
        source_id: UUID | None = None,
    ) -> AwardEvent:
        if amount <= 0:
            raise ValueError("Award events require a positive amount")

        event = AwardEvent(user_id=user_id, amount=int(amount), kind=kind, source_id=source_id)
        self._db.add(event)
        await self._db.flush()
        logger.debug(
            "Staged award event",
            user_id=str(user_id),
            amount=amount,
            kind=kind.value,
            source_id=str(source_id) if source_id else None,
        )
        return event

    async def list_events(
        self,
        user_id: UUID,
        *,
        limit: int = 50,
        kinds: Iterable[AwardEventKind] | None = None,
    ) -> list[AwardEvent]:
        stmt = select(AwardEvent).where(AwardEvent.user_id == user_id)
        kind_filter = list(kinds or [])
        if kind_filter:
            stmt = stmt.where(AwardEvent.kind.in_(kind_filter))
        stmt = stmt.order_by(AwardEvent.created_at.desc(), AwardEvent.id.desc()).limit(limit)
        result = await self._db.execute(stmt)
        return list(result.scalars().all())


__all__ = ["PointsLedger"]
