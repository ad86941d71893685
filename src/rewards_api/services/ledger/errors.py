"""Typed failures returned by ledger operations."""

from __future__ import annotations

from uuid import UUID

from rewards_api.models.withdrawal import WithdrawalMethod, WithdrawalStatus


class LedgerError(RuntimeError):
    """Base exception for ledger failures; ``code`` is stable across releases."""

    code = "LedgerError"


class AccountNotFound(LedgerError):
    code = "AccountNotFound"

    def __init__(self, account_id: UUID) -> None:
        super().__init__(f"Account {account_id} not found")
        self.account_id = account_id


class AccountBanned(LedgerError):
    code = "AccountBanned"

    def __init__(self, account_id: UUID) -> None:
        super().__init__(f"Account {account_id} is banned")
        self.account_id = account_id


class CooldownActive(LedgerError):
    """Raised when a time-gated claim is attempted before its cooldown elapsed."""

    code = "CooldownActive"

    def __init__(self, claim: str, retry_after_seconds: int) -> None:
        super().__init__(f"{claim} claim available again in {retry_after_seconds}s")
        self.claim = claim
        self.retry_after_seconds = retry_after_seconds


class TaskNotFound(LedgerError):
    code = "TaskNotFound"

    def __init__(self, task_id: UUID) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class TaskInactive(LedgerError):
    code = "TaskInactive"

    def __init__(self, task_id: UUID) -> None:
        super().__init__(f"Task {task_id} is not active")
        self.task_id = task_id


class AlreadyCompleted(LedgerError):
    code = "AlreadyCompleted"

    def __init__(self, account_id: UUID, task_id: UUID) -> None:
        super().__init__(f"Task {task_id} already completed by account {account_id}")
        self.account_id = account_id
        self.task_id = task_id


class BelowMinimum(LedgerError):
    code = "BelowMinimum"

    def __init__(self, method: WithdrawalMethod, amount: int, minimum: int) -> None:
        super().__init__(f"Minimum {method.value} withdrawal is {minimum} points, got {amount}")
        self.method = method
        self.amount = amount
        self.minimum = minimum


class InsufficientBalance(LedgerError):
    code = "InsufficientBalance"

    def __init__(self, account_id: UUID, amount: int) -> None:
        super().__init__(f"Account {account_id} cannot cover a debit of {amount} points")
        self.account_id = account_id
        self.amount = amount


class MissingWalletAddress(LedgerError):
    code = "MissingWalletAddress"

    def __init__(self, method: WithdrawalMethod) -> None:
        super().__init__(f"{method.value} withdrawals require a wallet address")
        self.method = method


class WithdrawalNotFound(LedgerError):
    code = "WithdrawalNotFound"

    def __init__(self, request_id: UUID) -> None:
        super().__init__(f"Withdrawal request {request_id} not found")
        self.request_id = request_id


class InvalidTransition(LedgerError):
    """Raised when a withdrawal is resolved outside the pending state."""

    code = "InvalidTransition"

    def __init__(self, current_status: WithdrawalStatus, requested_status: WithdrawalStatus) -> None:
        super().__init__(
            f"Cannot transition withdrawal from {current_status.value} to {requested_status.value}"
        )
        self.current_status = current_status
        self.requested_status = requested_status


class StorageUnavailable(LedgerError):
    """Raised when persistence fails; the operation left no partial effect."""

    code = "StorageUnavailable"


__all__ = [
    "AccountBanned",
    "AccountNotFound",
    "AlreadyCompleted",
    "BelowMinimum",
    "CooldownActive",
    "InsufficientBalance",
    "InvalidTransition",
    "LedgerError",
    "MissingWalletAddress",
    "StorageUnavailable",
    "TaskInactive",
    "TaskNotFound",
    "WithdrawalNotFound",
]
