#!/usr/bin/env python3
"""Quick health check for the rewards API observability endpoints.

Usage:
    python tooling/scripts/check_observability.py \
        --base-url https://staging-api.example.com \
        --api-key "$ADMIN_API_KEY"

The script validates:
  * Readiness: the database is reachable and the settings row exists.
  * Withdrawal backlog: pending requests stay under the moderation threshold.
  * Ledger counters: cooldown rejections stay a minority of daily/ad claims.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, Dict, Optional

import httpx


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rewards API observability checker")
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="Base URL of the rewards API service.",
    )
    parser.add_argument(
        "--api-key",
        default=None,
        help="Admin API key (required for stats and ledger observability endpoints).",
    )
    parser.add_argument(
        "--max-pending-withdrawals",
        type=int,
        default=100,
        help="Maximum pending withdrawal requests before failing (default: 100).",
    )
    parser.add_argument(
        "--max-cooldown-rate",
        type=float,
        default=0.5,
        help="Maximum ratio (0-1) of claims rejected by cooldown before failing (default: 0.5).",
    )
    parser.add_argument(
        "--min-sample-size",
        type=int,
        default=20,
        help="Minimum number of claims before enforcing the cooldown ratio (default: 20).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="HTTP request timeout in seconds.",
    )
    return parser.parse_args()


async def _get_json(
    client: httpx.AsyncClient,
    path: str,
    *,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    response = await client.get(path, headers=headers)
    response.raise_for_status()
    return response.json()


def _fail(message: str) -> None:
    print(f"[check-observability] FAIL {message}")
    sys.exit(1)


def _log_ok(message: str) -> None:
    print(f"[check-observability] OK {message}")


async def validate_readiness(client: httpx.AsyncClient) -> None:
    payload = await _get_json(client, "/api/v1/readyz")
    status = payload.get("status")
    if status == "error":
        _fail(f"Readiness reported error: {payload.get('components')}")
    _log_ok(f"Readiness {status}")


async def validate_withdrawal_backlog(
    client: httpx.AsyncClient,
    api_key: Optional[str],
    max_pending: int,
) -> None:
    if not api_key:
        _log_ok("Skipping withdrawal backlog (no API key provided)")
        return

    payload = await _get_json(client, "/api/v1/admin/stats", headers={"X-API-Key": api_key})
    pending = int(payload.get("pendingWithdrawals", 0))
    if pending > max_pending:
        _fail(f"Pending withdrawals {pending} exceed threshold {max_pending}")
    _log_ok(f"Withdrawal backlog OK (pending={pending})")


async def validate_claims(
    client: httpx.AsyncClient,
    api_key: Optional[str],
    max_cooldown_rate: float,
    min_sample_size: int,
) -> None:
    if not api_key:
        _log_ok("Skipping ledger counters (no API key provided)")
        return

    payload = await _get_json(client, "/api/v1/observability/ledger", headers={"X-API-Key": api_key})
    claims = payload.get("claims", {}) or {}
    awarded = 0
    cooldown = 0
    for kind in ("daily", "ad"):
        outcomes = claims.get(kind, {}) or {}
        awarded += int(outcomes.get("awarded", 0))
        cooldown += int(outcomes.get("cooldown", 0))

    total = awarded + cooldown
    if total < min_sample_size:
        _log_ok(f"Claim sample size below threshold ({total}/{min_sample_size}); skipping cooldown check")
        return

    rate = cooldown / total
    if rate > max_cooldown_rate:
        _fail(f"Cooldown rejection rate {rate:.1%} exceeds threshold {max_cooldown_rate:.1%}")
    _log_ok(f"Ledger counters OK (awarded={awarded}, cooldown={cooldown}, rate={rate:.1%})")


async def main() -> None:
    args = parse_args()

    async with httpx.AsyncClient(base_url=args.base_url, timeout=args.timeout) as client:
        await validate_readiness(client)
        await validate_withdrawal_backlog(client, args.api_key, args.max_pending_withdrawals)
        await validate_claims(client, args.api_key, args.max_cooldown_rate, args.min_sample_size)

    _log_ok("Observability checks completed successfully")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except httpx.HTTPStatusError as exc:
        _fail(f"HTTP {exc.response.status_code} while calling {exc.request.url}")
    except httpx.HTTPError as exc:
        _fail(f"Request failed: {exc}")
