from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class LedgerSnapshot:
    claims: Dict[str, Dict[str, int]]
    withdrawals: Dict[str, int]
    referrals: Dict[str, int]
    points: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "claims": {key: dict(value) for key, value in self.claims.items()},
            "withdrawals": dict(self.withdrawals),
            "referrals": dict(self.referrals),
            "points": dict(self.points),
        }


class LedgerObservabilityStore:
    """Collect claim, withdrawal and referral telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._claims: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._withdrawals: Dict[str, int] = defaultdict(int)
        self._referrals: Dict[str, int] = defaultdict(int)
        self._points: Dict[str, int] = defaultdict(int)

    def record_claim(self, kind: str, outcome: str, points: int = 0) -> None:
        with self._lock:
            self._claims[kind][outcome] += 1
            if points:
                self._points["awarded"] += points

    def record_withdrawal(self, event: str, points: int = 0) -> None:
        with self._lock:
            self._withdrawals[event] += 1
            if event == "requested" and points:
                self._points["debited"] += points
            elif event == "refunded" and points:
                self._points["refunded"] += points

    def record_referral(self, event: str, points: int = 0) -> None:
        with self._lock:
            self._referrals[event] += 1
            if points:
                self._points["awarded"] += points

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            claims = {kind: dict(outcomes) for kind, outcomes in self._claims.items()}
            withdrawals = dict(self._withdrawals)
            referrals = dict(self._referrals)
            points = dict(self._points)
        return LedgerSnapshot(claims=claims, withdrawals=withdrawals, referrals=referrals, points=points)

    def reset(self) -> None:
        with self._lock:
            self._claims.clear()
            self._withdrawals.clear()
            self._referrals.clear()
            self._points.clear()


_STORE = LedgerObservabilityStore()


def get_ledger_store() -> LedgerObservabilityStore:
    return _STORE


__all__ = ["get_ledger_store", "LedgerObservabilityStore", "LedgerSnapshot"]
