"""
Lucky Kameti membership service

This package provides:
- Paid membership entries with monthly expiry and renewal
- Member reference codes, unique and retried on collision
- Referral attribution: first referral wins, counted once
- Winner lifecycle: pending -> paid, one pending winner at a time
- Withdrawal eligibility and refund requests
"""

from .errors import MembershipError
from .models import (
    EntryRecord,
    EntryStatus,
    PaymentConfirmation,
    ReconcileRequest,
    ReconcileResult,
    WinnerPaymentStatus,
    WinnerRecord,
    WithdrawalQuote,
    WithdrawalStatus,
)

__all__ = [
    "MembershipError",
    "EntryRecord",
    "EntryStatus",
    "PaymentConfirmation",
    "ReconcileRequest",
    "ReconcileResult",
    "WinnerPaymentStatus",
    "WinnerRecord",
    "WithdrawalQuote",
    "WithdrawalStatus",
]
