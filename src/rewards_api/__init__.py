"""Points ledger and reward-claim service for messaging mini-apps."""

__version__ = "0.1.0"
