"""Turns a confirmed payment into a new membership entry or a renewal.

Flow per call:

1. terms and payment amount/currency are checked before any lookup
2. an active entry for the email rejects the call (``AlreadyActive``)
3. a referral code, if given, must resolve to an active referrer who is not the payer
4. renewal updates the entry in place, keeping its reference code;
   a new entry takes a fresh reference code, retried on collision
5. a newly linked referrer gets ``referral_count + 1`` in the same transaction
6. after commit, the member is notified (failures are only logged)
"""

from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from notifications.dispatcher import Dispatcher
from notifications.templates import PaymentVerification, RenewalNotification

from . import config
from .db import Storage, utcnow
from .errors import AlreadyActive, DuplicateEmail, PaymentMismatch, TermsNotAccepted
from .logger import get_logger
from .models import (
    EntryRecord,
    EntryStatus,
    PaymentConfirmation,
    ReconcileRequest,
    ReconcileResult,
)
from .reference import ReferenceAllocator
from .referrals import attach_referrer, validate_referrer
from .tables import Entry

logger = get_logger(__name__)


class Reconciler:
    def __init__(
        self,
        storage: Storage,
        dispatcher: Dispatcher,
        allocator: Optional[ReferenceAllocator] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.dispatcher = dispatcher
        self.allocator = allocator or ReferenceAllocator()
        self.clock = clock

    def precheck(self, request: ReconcileRequest) -> Optional[EntryRecord]:
        """Checks the API runs before asking the processor to capture.

        Returns the existing (inactive) entry for the email, if any. The
        referral code is validated here too so a bad code is rejected
        before the member is charged; ``reconcile`` checks it again.
        """
        if not request.terms_accepted:
            raise TermsNotAccepted("Terms and conditions must be accepted")

        with self.storage.session() as session:
            existing = self._find_by_email(session, request.email)
            if existing is not None and existing.status == EntryStatus.ACTIVE.value:
                raise AlreadyActive()
            self._resolve_referrer(session, request)
            return EntryRecord.model_validate(existing) if existing is not None else None

    def reconcile(self, payment: PaymentConfirmation, request: ReconcileRequest) -> ReconcileResult:
        if not request.terms_accepted:
            raise TermsNotAccepted("Terms and conditions must be accepted")
        self._verify_payment(payment)

        with self.storage.session() as session:
            existing = self._find_by_email(session, request.email)
            if existing is not None and existing.status == EntryStatus.ACTIVE.value:
                raise AlreadyActive()
            existing_id = existing.id if existing is not None else None

        if existing_id is not None:
            result = self._renew(existing_id, payment, request)
            notification = RenewalNotification(member_name=request.name)
        else:
            result = self._create(payment, request)
            notification = PaymentVerification(
                member_name=request.name, amount=config.ENTRY_FEE, ref=result.reference_code
            )

        self.dispatcher.dispatch(request.email, notification)
        return result

    def _renew(self, entry_id: int, payment: PaymentConfirmation, request: ReconcileRequest) -> ReconcileResult:
        now = self.clock()
        with self.storage.session() as session:
            referrer = self._resolve_referrer(session, request)

            renewed = session.execute(
                update(Entry)
                .where(Entry.id == entry_id, Entry.status != EntryStatus.ACTIVE.value)
                .values(
                    name=request.name,
                    status=EntryStatus.ACTIVE.value,
                    paid=True,
                    paypal_order_id=payment.processor_order_id,
                    last_payment_date=now,
                    renewal_due=now + config.RENEWAL_PERIOD,
                    entry_count=Entry.entry_count + 1,
                    terms_accepted=True,
                    terms_accepted_at=now,
                )
            ).rowcount
            if not renewed:
                # a concurrent renewal got there first
                raise AlreadyActive()

            if referrer is not None:
                attach_referrer(session, entry_id, referrer.id, request.referral_code)

            ref = session.scalar(select(Entry.ref).where(Entry.id == entry_id))

        logger.info(
            f"Membership renewed: {request.email} ref={ref} order={payment.processor_order_id} "
            f"referral={request.referral_code or 'none'}"
        )
        return ReconcileResult(reference_code=ref, is_renewal=True)

    def _create(self, payment: PaymentConfirmation, request: ReconcileRequest) -> ReconcileResult:
        for attempt, ref in self.allocator.attempts():
            now = self.clock()
            try:
                with self.storage.session() as session:
                    referrer = self._resolve_referrer(session, request)

                    entry = Entry(
                        name=request.name,
                        email=request.email,
                        ref=ref,
                        paid=True,
                        status=EntryStatus.ACTIVE.value,
                        timestamp=now,
                        paypal_order_id=payment.processor_order_id,
                        last_payment_date=now,
                        renewal_due=now + config.RENEWAL_PERIOD,
                        entry_count=1,
                        referral_count=0,
                        terms_accepted=True,
                        terms_accepted_at=now,
                    )
                    session.add(entry)
                    session.flush()

                    if referrer is not None:
                        attach_referrer(session, entry.id, referrer.id, request.referral_code)
            except IntegrityError:
                self._raise_if_email_taken(request.email)
                if not self._ref_taken(ref):
                    raise
                logger.warning(
                    f"Reference collision on {ref}, retrying ({attempt}/{self.allocator.max_attempts})"
                )
                continue

            logger.info(
                f"New entry created: {request.email} ref={ref} order={payment.processor_order_id} "
                f"referral={request.referral_code or 'none'}"
            )
            return ReconcileResult(reference_code=ref, is_renewal=False)

    @staticmethod
    def _verify_payment(payment: PaymentConfirmation) -> None:
        if (
            not payment.confirmed
            or payment.amount != config.ENTRY_FEE
            or payment.currency != config.CURRENCY
        ):
            logger.error(
                f"Payment amount mismatch on order {payment.processor_order_id}: "
                f"confirmed={payment.confirmed} amount={payment.amount} {payment.currency}"
            )
            raise PaymentMismatch()

    @staticmethod
    def _find_by_email(session: Session, email: str) -> Optional[Entry]:
        return session.scalars(select(Entry).where(Entry.email == email)).one_or_none()

    @staticmethod
    def _resolve_referrer(session: Session, request: ReconcileRequest) -> Optional[Entry]:
        if not request.referral_code:
            return None
        return validate_referrer(session, request.referral_code, request.email)

    def _raise_if_email_taken(self, email: str) -> None:
        with self.storage.session() as session:
            entry = self._find_by_email(session, email)
            if entry is None:
                return
            if entry.status == EntryStatus.ACTIVE.value:
                raise AlreadyActive()
            raise DuplicateEmail()

    def _ref_taken(self, ref: str) -> bool:
        with self.storage.session() as session:
            return session.scalar(select(Entry.id).where(Entry.ref == ref)) is not None
