"""
Member notifications

Typed email variants, their HTML rendering, and a dispatcher that sends
them and records every attempt.
"""

from .dispatcher import Dispatcher, SendResult, SmtpTransport
from .templates import (
    DuePaymentReminder,
    InquiryReply,
    NotificationKind,
    PaymentVerification,
    RenewalNotification,
    WinnerNotification,
    notification_from_dict,
)

__all__ = [
    "Dispatcher",
    "SendResult",
    "SmtpTransport",
    "DuePaymentReminder",
    "InquiryReply",
    "NotificationKind",
    "PaymentVerification",
    "RenewalNotification",
    "WinnerNotification",
    "notification_from_dict",
]
