from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class RewardsSnapshot:
    checkins: Dict[str, int]
    referrals: Dict[str, int]
    claims: Dict[str, int]
    points_awarded: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "checkins": dict(self.checkins),
            "referrals": dict(self.referrals),
            "claims": dict(self.claims),
            "points_awarded": dict(self.points_awarded),
        }


class RewardsObservabilityStore:
    """Collect rewards engine outcomes for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._checkins: Dict[str, int] = defaultdict(int)
        self._referrals: Dict[str, int] = defaultdict(int)
        self._claims: Dict[str, int] = defaultdict(int)
        self._points: Dict[str, int] = defaultdict(int)

    def record_checkin(self, outcome: str) -> None:
        with self._lock:
            self._checkins[outcome] += 1

    def record_referral(self, outcome: str) -> None:
        with self._lock:
            self._referrals[outcome] += 1

    def record_claim(self, outcome: str) -> None:
        with self._lock:
            self._claims[outcome] += 1

    def record_award(self, kind: str, amount: int) -> None:
        with self._lock:
            self._points[kind] += amount

    def snapshot(self) -> RewardsSnapshot:
        with self._lock:
            return RewardsSnapshot(
                checkins=dict(self._checkins),
                referrals=dict(self._referrals),
                claims=dict(self._claims),
                points_awarded=dict(self._points),
            )

    def reset(self) -> None:
        with self._lock:
            self._checkins.clear()
            self._referrals.clear()
            self._claims.clear()
            self._points.clear()


_STORE = RewardsObservabilityStore()


def get_rewards_store() -> RewardsObservabilityStore:
    return _STORE


__all__ = ["get_rewards_store", "RewardsObservabilityStore", "RewardsSnapshot"]
