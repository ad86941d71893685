"""Translate ledger failures into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from rewards_api.services.ledger import (
    AccountBanned,
    AccountNotFound,
    AlreadyCompleted,
    BelowMinimum,
    CooldownActive,
    InsufficientBalance,
    InvalidTransition,
    LedgerError,
    MissingWalletAddress,
    StorageUnavailable,
    TaskInactive,
    TaskNotFound,
    WithdrawalNotFound,
)

_STATUS_BY_ERROR: dict[type[LedgerError], int] = {
    CooldownActive: status.HTTP_429_TOO_MANY_REQUESTS,
    AlreadyCompleted: status.HTTP_409_CONFLICT,
    TaskNotFound: status.HTTP_404_NOT_FOUND,
    AccountNotFound: status.HTTP_404_NOT_FOUND,
    WithdrawalNotFound: status.HTTP_404_NOT_FOUND,
    TaskInactive: status.HTTP_409_CONFLICT,
    BelowMinimum: status.HTTP_400_BAD_REQUEST,
    MissingWalletAddress: status.HTTP_400_BAD_REQUEST,
    InsufficientBalance: status.HTTP_409_CONFLICT,
    InvalidTransition: status.HTTP_409_CONFLICT,
    AccountBanned: status.HTTP_403_FORBIDDEN,
    StorageUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def ledger_http_error(error: LedgerError) -> HTTPException:
    detail: dict[str, object] = {"code": error.code, "message": str(error)}
    headers: dict[str, str] | None = None
    if isinstance(error, CooldownActive):
        detail["retryAfterSeconds"] = error.retry_after_seconds
        headers = {"Retry-After": str(error.retry_after_seconds)}
    elif isinstance(error, BelowMinimum):
        detail["minimum"] = error.minimum

    status_code = _STATUS_BY_ERROR.get(type(error), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail=detail, headers=headers)


__all__ = ["ledger_http_error"]
