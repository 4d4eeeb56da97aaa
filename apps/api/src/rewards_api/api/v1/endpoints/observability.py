"""Observability endpoints for rewards counters and Prometheus metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from rewards_api.api.dependencies.security import require_observability_api_key
from rewards_api.observability.rewards import get_rewards_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/rewards",
    dependencies=[Depends(require_observability_api_key)],
    summary="Rewards engine observability snapshot",
)
async def get_rewards_snapshot() -> dict[str, object]:
    """Retrieve aggregated rewards outcome counters (requires observability API key)."""
    return get_rewards_store().snapshot().as_dict()


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} gauge",
        f"{name}{label_fragment} {value}",
    ]


_OUTCOME_METRICS = (
    ("checkins", "rewards_daily_checkins_total", "Daily check-in claims grouped by outcome"),
    ("referrals", "rewards_referral_applications_total", "Referral applications grouped by outcome"),
    ("claims", "rewards_spotlight_claims_total", "Spotlight claim events grouped by outcome"),
)


@router.get(
    "/prometheus",
    dependencies=[Depends(require_observability_api_key)],
    summary="Prometheus-formatted observability metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_rewards_store().snapshot().as_dict()

    lines: list[str] = []
    for section, metric_name, description in _OUTCOME_METRICS:
        counts: dict[str, int] = snapshot.get(section, {}) or {}
        for outcome, value in sorted(counts.items()):
            lines.extend(_format_metric(metric_name, description, value, labels={"outcome": outcome}))

    points: dict[str, int] = snapshot.get("points_awarded", {}) or {}
    for kind, value in sorted(points.items()):
        lines.extend(
            _format_metric(
                "rewards_points_awarded_total",
                "Points awarded grouped by award kind",
                value,
                labels={"kind": kind},
            )
        )

    return PlainTextResponse("\n".join(lines) + "\n")
