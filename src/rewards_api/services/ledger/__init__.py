"""Points ledger and reward claim services."""

from .errors import (  # noqa: F401
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
from .events import LedgerChanged, LedgerEventBus, get_ledger_event_bus  # noqa: F401
from .referrals import (  # noqa: F401
    AccountRegistry,
    AccountView,
    DashboardStats,
    ReferralSummary,
    RegistrationResult,
    decode_ledger_cursor,
    encode_ledger_cursor,
)
from .rewards import ClaimResult, RewardClaimEngine, TaskView  # noqa: F401
from .snapshot import SettingsSnapshot, ensure_app_settings, load_settings_snapshot  # noqa: F401
from .withdrawals import WithdrawalResolution, WithdrawalWorkflow  # noqa: F401
