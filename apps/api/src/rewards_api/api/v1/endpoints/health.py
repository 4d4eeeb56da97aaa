from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.api.dependencies.storage import get_evidence_storage
from rewards_api.db.session import get_session
from rewards_api.services.storage import EvidenceStorage, EvidenceStorageError


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")
    last_error_at: str | None = Field(default=None, description="ISO timestamp of most recent error")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    session: AsyncSession = Depends(get_session),
    storage: EvidenceStorage = Depends(get_evidence_storage),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {
        "database": await _evaluate_database_component(session),
        "evidence_storage": await _evaluate_evidence_storage_component(storage),
    }

    status: Literal["ready", "degraded", "error"] = "ready"
    if components["database"].status == "error":
        status = "error"
    elif components["evidence_storage"].status != "ready":
        status = "degraded"

    return ReadinessPayload(status=status, components=components)


async def _evaluate_database_component(session: AsyncSession) -> ComponentStatus:
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as error:
        return ComponentStatus(
            status="error",
            detail=f"Database unreachable ({error.__class__.__name__})",
            last_error_at=datetime.now(timezone.utc).isoformat(),
        )
    return ComponentStatus(status="ready", detail="Database reachable")


async def _evaluate_evidence_storage_component(storage: EvidenceStorage) -> ComponentStatus:
    if not storage.configured:
        return ComponentStatus(
            status="disabled",
            detail="Evidence storage bucket not configured",
        )
    try:
        await storage.check_bucket()
    except EvidenceStorageError as error:
        return ComponentStatus(
            status="error",
            detail=str(error),
            last_error_at=datetime.now(timezone.utc).isoformat(),
        )
    return ComponentStatus(status="ready", detail=f"Bucket {storage.bucket} reachable")
