"""SQLAlchemy models package."""

from .account import Account  # noqa: F401
from .app_settings import APP_SETTINGS_ROW_ID, AppSettings  # noqa: F401
from .ledger import LedgerEntry, LedgerEntryType  # noqa: F401
from .task import Task, TaskCompletion  # noqa: F401
from .withdrawal import (  # noqa: F401
    WithdrawalMethod,
    WithdrawalRequest,
    WithdrawalStatus,
)
