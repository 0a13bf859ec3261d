from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from enum import Enum
from html import escape
from typing import Any, ClassVar, Union


class NotificationKind(str, Enum):
    PAYMENT_VERIFICATION = "paymentVerification"
    WINNER_NOTIFICATION = "winnerNotification"
    DUE_PAYMENT_REMINDER = "duePaymentReminder"
    RENEWAL_NOTIFICATION = "renewalNotification"
    INQUIRY_REPLY = "inquiryReply"


def _layout(header: str, body: str, brand: str, contact: str, header_style: str = "background: #0a1a2f; color: white;") -> str:
    signature = f'<a href="mailto:{escape(contact)}">{escape(contact)}</a>' if contact else ""
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; background: #f9f9f9; padding: 20px;">
  <div style="{header_style} padding: 20px; border-radius: 10px 10px 0 0;">
    {header}
  </div>
  <div style="background: white; padding: 20px; border-radius: 0 0 10px 10px;">
    {body}
    <p style="color: #666; font-size: 14px; margin-top: 30px;">{escape(brand)} Team<br>{signature}</p>
  </div>
</div>
"""


@dataclass(frozen=True)
class PaymentVerification:
    member_name: str
    amount: Decimal
    ref: str

    kind: ClassVar[NotificationKind] = NotificationKind.PAYMENT_VERIFICATION

    def subject(self, brand: str) -> str:
        return f"Payment Verified - {brand}"

    def html(self, brand: str, contact: str = "") -> str:
        body = f"""
    <p>Dear {escape(self.member_name)},</p>
    <p>Your payment of <strong>${self.amount}</strong> has been successfully verified.</p>
    <p><strong>Your Reference:</strong> {escape(self.ref)}</p>
    <p>You are now officially entered into this month's {escape(brand)} draw!</p>
    <p>Winner will be announced on the 1st of next month at midnight.</p>"""
        return _layout('<h2 style="margin: 0; color: #d4af37;">Payment Verified!</h2>', body, brand, contact)


@dataclass(frozen=True)
class WinnerNotification:
    member_name: str
    amount: Decimal
    ref: str

    kind: ClassVar[NotificationKind] = NotificationKind.WINNER_NOTIFICATION

    def subject(self, brand: str) -> str:
        return f"CONGRATULATIONS! You Won {brand}!"

    def html(self, brand: str, contact: str = "") -> str:
        body = f"""
    <p style="font-size: 18px; color: #2a4f2a;"><strong>Congratulations {escape(self.member_name)}!</strong></p>
    <p>You have been selected as this month's {escape(brand)} winner!</p>
    <div style="background: #2a4f2a; color: white; padding: 15px; border-radius: 8px; text-align: center; margin: 20px 0;">
      <h3 style="margin: 0;">Your Winning Amount: ${self.amount}</h3>
      <p style="margin: 5px 0;">Reference: {escape(self.ref)}</p>
    </div>
    <ul>
      <li>Our admin team will contact you shortly for payment processing</li>
      <li>You will be removed from the draw after payment is processed</li>
      <li>You can re-join anytime for future draws</li>
    </ul>"""
        return _layout(
            f'<h1 style="margin: 0; text-align: center;">WINNER!</h1><h2 style="text-align: center;">{escape(brand)}</h2>',
            body, brand, contact,
            header_style="background: linear-gradient(135deg, #d4af37 0%, #b8941f 100%); color: #0a1a2f;",
        )


@dataclass(frozen=True)
class DuePaymentReminder:
    member_name: str
    due_date: str

    kind: ClassVar[NotificationKind] = NotificationKind.DUE_PAYMENT_REMINDER

    def subject(self, brand: str) -> str:
        return f"Payment Due Reminder - {brand}"

    def html(self, brand: str, contact: str = "") -> str:
        body = f"""
    <p>Dear {escape(self.member_name)},</p>
    <p>This is a friendly reminder that your {escape(brand)} payment is due by <strong>{escape(self.due_date)}</strong>.</p>
    <p>If payment is not made in time, your entry will not take part in the next draw.</p>
    <p>You can renew by visiting our website and following the PayPal payment process.</p>"""
        return _layout('<h2 style="margin: 0;">Payment Due Reminder</h2>', body, brand, contact,
                       header_style="background: #ff6b6b; color: white;")


@dataclass(frozen=True)
class RenewalNotification:
    member_name: str

    kind: ClassVar[NotificationKind] = NotificationKind.RENEWAL_NOTIFICATION

    def subject(self, brand: str) -> str:
        return f"Membership Renewed - {brand}"

    def html(self, brand: str, contact: str = "") -> str:
        body = f"""
    <p>Hello {escape(self.member_name)},</p>
    <p>Welcome back to {escape(brand)}! Your membership has been renewed for this month's draw.</p>
    <p>Your reference code stays the same.</p>"""
        return _layout('<h2 style="margin: 0; color: #d4af37;">Membership Renewed</h2>', body, brand, contact)


@dataclass(frozen=True)
class InquiryReply:
    member_name: str
    original_subject: str
    admin_reply: str

    kind: ClassVar[NotificationKind] = NotificationKind.INQUIRY_REPLY

    def subject(self, brand: str) -> str:
        return f"Re: {self.original_subject} - {brand} Support"

    def html(self, brand: str, contact: str = "") -> str:
        body = f"""
    <p>Dear {escape(self.member_name)},</p>
    <p>Thank you for contacting {escape(brand)} support. Here is our response to your inquiry:</p>
    <div style="background: #f8f9fa; border-left: 4px solid #d4af37; padding: 15px; margin: 20px 0;">
      <p style="margin: 0; white-space: pre-line;">{escape(self.admin_reply)}</p>
    </div>"""
        return _layout('<h2 style="margin: 0; color: #d4af37;">Support Response</h2>', body, brand, contact)


Notification = Union[PaymentVerification, WinnerNotification, DuePaymentReminder, RenewalNotification, InquiryReply]

NOTIFICATION_TYPES: dict[NotificationKind, type] = {
    cls.kind: cls
    for cls in (PaymentVerification, WinnerNotification, DuePaymentReminder, RenewalNotification, InquiryReply)
}


def template_args(notification: Notification) -> list[Any]:
    """Ordered template arguments, as recorded for auditing."""
    return [getattr(notification, f.name) for f in fields(notification)]


def notification_from_dict(kind: str, data: dict) -> Notification:
    """Build a notification variant from loosely typed input.

    Raises:
        ValueError: Unknown kind or a required argument is missing.
    """
    try:
        cls = NOTIFICATION_TYPES[NotificationKind(kind)]
    except ValueError:
        raise ValueError(f"Unknown notification type '{kind}'")

    kwargs = {}
    for f in fields(cls):
        value = data.get(f.name)
        if value is None or value == "":
            raise ValueError(f"'{f.name}' is required for {cls.kind.value}")
        if f.type is Decimal:
            try:
                value = Decimal(str(value))
            except InvalidOperation:
                raise ValueError(f"'{f.name}' must be a number")
        kwargs[f.name] = value
    return cls(**kwargs)
