"""Observability endpoints for ledger counters and Prometheus metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from rewards_api.api.dependencies.security import require_admin_api_key
from rewards_api.observability.ledger import get_ledger_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/ledger",
    dependencies=[Depends(require_admin_api_key)],
    summary="Ledger observability snapshot",
)
async def get_ledger_snapshot() -> dict[str, object]:
    """Retrieve aggregated claim, withdrawal and referral counters (requires admin API key)."""
    return get_ledger_store().snapshot().as_dict()


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} counter",
        f"{name}{label_fragment} {value}",
    ]


@router.get(
    "/prometheus",
    dependencies=[Depends(require_admin_api_key)],
    summary="Prometheus-formatted ledger metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_ledger_store().snapshot()
    lines: list[str] = []

    for kind, outcomes in sorted(snapshot.claims.items()):
        for outcome, value in sorted(outcomes.items()):
            lines.extend(
                _format_metric(
                    "rewards_claims_total",
                    "Reward claims grouped by kind and outcome",
                    value,
                    labels={"kind": kind, "outcome": outcome},
                )
            )

    for event, value in sorted(snapshot.withdrawals.items()):
        lines.extend(
            _format_metric(
                "rewards_withdrawal_events_total",
                "Withdrawal workflow events",
                value,
                labels={"event": event},
            )
        )

    for event, value in sorted(snapshot.referrals.items()):
        lines.extend(
            _format_metric(
                "rewards_referral_events_total",
                "Referral registration and credit events",
                value,
                labels={"event": event},
            )
        )

    for bucket, value in sorted(snapshot.points.items()):
        lines.extend(
            _format_metric(
                "rewards_points_total",
                "Points moved through the ledger",
                value,
                labels={"bucket": bucket},
            )
        )

    return PlainTextResponse("\n".join(lines) + "\n")
