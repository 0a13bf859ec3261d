from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def normalise_email(value: str) -> str:
    return value.strip().lower()


class EntryStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    WINNER_PAID = "winner_paid"


class WinnerPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class WithdrawalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSED = "processed"


class InquiryStatus(str, Enum):
    PENDING = "pending"
    REPLIED = "replied"
    RESOLVED = "resolved"


class CamelModel(BaseModel):
    """Snake case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Payment boundary


class PaymentConfirmation(CamelModel):
    confirmed: bool
    amount: Decimal
    currency: str
    processor_order_id: str


# Requests


class EmailRequest(CamelModel):
    email: str = Field(..., min_length=3)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return normalise_email(v)


class ReconcileRequest(EmailRequest):
    name: str = Field(..., min_length=1)
    referral_code: Optional[str] = None
    terms_accepted: bool = False

    @field_validator("referral_code")
    @classmethod
    def _referral_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class CaptureOrderRequest(ReconcileRequest):
    order_id: str = Field(..., alias="orderID", min_length=1)


class ReferralCodeRequest(CamelModel):
    referral_code: Optional[str] = None


class ContactRequest(CamelModel):
    name: str = ""
    email: str = ""
    subject: str = ""
    message: str = ""


class SelectWinnerRequest(CamelModel):
    entry_id: int


class WinnerPaidRequest(CamelModel):
    winner_id: int


class InquiryReplyRequest(CamelModel):
    inquiry_id: int
    admin_reply: str = ""


class InquiryResolveRequest(CamelModel):
    inquiry_id: int


class SendEmailRequest(CamelModel):
    email: str
    type: str
    member_name: Optional[str] = None
    amount: Optional[str] = None
    ref: Optional[str] = None
    due_date: Optional[str] = None
    original_subject: Optional[str] = None
    admin_reply: Optional[str] = None


class WithdrawalReviewRequest(CamelModel):
    approve: bool
    notes: Optional[str] = None


class WithdrawalProcessRequest(CamelModel):
    notes: Optional[str] = None
    paypal_order_id: Optional[str] = None


# Records


class EntryRecord(CamelModel):
    id: int
    name: str
    email: str
    ref: str
    paid: bool
    status: EntryStatus
    timestamp: datetime
    paypal_order_id: Optional[str] = None
    last_payment_date: Optional[datetime] = None
    renewal_due: Optional[datetime] = None
    referral_code: Optional[str] = None
    referred_by: Optional[int] = None
    referral_count: int = 0
    entry_count: int = 1
    terms_accepted: bool = False
    terms_accepted_at: Optional[datetime] = None


class WinnerRecord(CamelModel):
    id: int
    name: str
    email: str
    ref: str
    entry_id: Optional[int] = None
    announce_date: datetime
    payment_status: WinnerPaymentStatus
    winning_amount: Decimal
    email_sent: bool = False
    admin_verified: bool = False
    paid_at: Optional[datetime] = None


class EmailLogRecord(CamelModel):
    id: int
    email: str
    subject: str
    type: str
    sent_at: datetime
    success: bool
    error_message: Optional[str] = None


class InquiryRecord(CamelModel):
    id: int
    name: str
    email: str
    subject: str
    message: str
    status: InquiryStatus
    created_at: datetime
    replied_at: Optional[datetime] = None
    admin_reply: Optional[str] = None


class WithdrawalRecord(CamelModel):
    id: int
    entry_id: int
    member_email: str
    member_name: str
    entry_count: int
    total_paid: Decimal
    service_charge_amount: Decimal
    refund_amount: Decimal
    status: WithdrawalStatus
    request_date: datetime
    admin_reviewed_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    processed_at: Optional[datetime] = None
    payment_method: Optional[str] = None
    paypal_order_id: Optional[str] = None


# Results


class ReconcileResult(CamelModel):
    reference_code: str
    is_renewal: bool


class EmailStatus(CamelModel):
    exists: bool
    status: Optional[EntryStatus] = None
    message: str


class ReferralCheck(CamelModel):
    valid: bool
    referrer_name: Optional[str] = None
    referrer_id: Optional[int] = None
    message: str


class ReferredMember(CamelModel):
    name: str
    email: str
    ref: str
    status: EntryStatus
    join_date: datetime


class ReferralSummary(CamelModel):
    name: str
    ref: str
    referral_count: int
    total_referrals: int
    referrals: list[ReferredMember]


class ReferralLink(CamelModel):
    share_link: str
    your_ref: str
    your_name: str


class WithdrawalQuote(CamelModel):
    eligible: bool
    entry_count: int
    entries_needed: int
    total_paid: Decimal
    service_charge: Decimal
    refund_amount: Decimal


class WithdrawalCheck(CamelModel):
    name: str
    email: str
    ref: str
    quote: Optional[WithdrawalQuote] = None
    existing_request_status: Optional[WithdrawalStatus] = None

    @property
    def has_existing_request(self) -> bool:
        return self.existing_request_status is not None
