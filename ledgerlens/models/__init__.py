"""Database model exports."""

from .account import Account
from .report import Report
from .user import User

__all__ = [
    "Account",
    "Report",
    "User",
]
