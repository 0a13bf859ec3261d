from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from . import config
from .db import Storage, utcnow
from .errors import (
    DuplicateWithdrawalRequest,
    EntryNotFound,
    InvalidStateTransition,
    NotEligible,
    WithdrawalNotFound,
)
from .logger import get_logger
from .models import (
    WithdrawalCheck,
    WithdrawalQuote,
    WithdrawalRecord,
    WithdrawalStatus,
    normalise_email,
)
from .tables import Entry, WithdrawalRequest

logger = get_logger(__name__)

CENT = Decimal("0.01")


def round2(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def eligibility(
    entry_count: int,
    fee: Decimal = config.ENTRY_FEE,
    min_entries: int = config.WITHDRAWAL_MIN_ENTRIES,
    charge_rate: Decimal = config.SERVICE_CHARGE_RATE,
) -> WithdrawalQuote:
    """Refund economics for a member with ``entry_count`` paid entries."""
    total_paid = round2(fee * entry_count)
    service_charge = round2(total_paid * charge_rate)
    return WithdrawalQuote(
        eligible=entry_count >= min_entries,
        entry_count=entry_count,
        entries_needed=max(min_entries - entry_count, 0),
        total_paid=total_paid,
        service_charge=service_charge,
        refund_amount=round2(total_paid - service_charge),
    )


class WithdrawalService:
    def __init__(self, storage: Storage, clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self.clock = clock

    def check(self, email: str) -> WithdrawalCheck:
        with self.storage.session() as session:
            member = self._member(session, email)
            existing = session.scalar(
                select(WithdrawalRequest.status).where(WithdrawalRequest.entry_id == member.id)
            )
            if existing is not None:
                return WithdrawalCheck(
                    name=member.name, email=member.email, ref=member.ref, existing_request_status=existing
                )
            return WithdrawalCheck(
                name=member.name, email=member.email, ref=member.ref, quote=eligibility(member.entry_count)
            )

    def submit(self, email: str) -> WithdrawalRecord:
        """Create a refund request. Eligibility is recomputed from the ledger."""
        try:
            with self.storage.session() as session:
                member = self._member(session, email)

                existing = session.scalar(
                    select(WithdrawalRequest.id).where(WithdrawalRequest.entry_id == member.id)
                )
                if existing is not None:
                    raise DuplicateWithdrawalRequest()

                quote = eligibility(member.entry_count)
                if not quote.eligible:
                    raise NotEligible(
                        f"Not eligible for withdrawal: {quote.entries_needed} more entries needed"
                    )

                request = WithdrawalRequest(
                    entry_id=member.id,
                    member_email=member.email,
                    member_name=member.name,
                    entry_count=member.entry_count,
                    total_paid=quote.total_paid,
                    service_charge_amount=quote.service_charge,
                    refund_amount=quote.refund_amount,
                    status=WithdrawalStatus.PENDING.value,
                    request_date=self.clock(),
                )
                session.add(request)
                session.flush()
                record = WithdrawalRecord.model_validate(request)
        except IntegrityError:
            raise DuplicateWithdrawalRequest()

        logger.info(
            f"New withdrawal request submitted: {record.member_email} refund={record.refund_amount}"
        )
        return record

    def list_requests(self) -> list[WithdrawalRecord]:
        with self.storage.session() as session:
            rows = session.scalars(
                select(WithdrawalRequest).order_by(WithdrawalRequest.request_date, WithdrawalRequest.id)
            ).all()
            return [WithdrawalRecord.model_validate(row) for row in rows]

    def review(self, request_id: int, approve: bool, notes: Optional[str] = None) -> WithdrawalRecord:
        new_status = WithdrawalStatus.APPROVED if approve else WithdrawalStatus.REJECTED
        with self.storage.session() as session:
            request = self._request(session, request_id)
            self._require_status(request, WithdrawalStatus.PENDING, new_status)
            request.status = new_status.value
            request.admin_reviewed_at = self.clock()
            request.admin_notes = notes
            session.flush()
            record = WithdrawalRecord.model_validate(request)

        logger.info(f"Withdrawal request {request_id} {new_status.value}")
        return record

    def mark_processed(
        self,
        request_id: int,
        notes: Optional[str] = None,
        paypal_order_id: Optional[str] = None,
    ) -> WithdrawalRecord:
        with self.storage.session() as session:
            request = self._request(session, request_id)
            self._require_status(request, WithdrawalStatus.APPROVED, WithdrawalStatus.PROCESSED)
            request.status = WithdrawalStatus.PROCESSED.value
            request.processed_at = self.clock()
            if notes:
                request.admin_notes = notes
            if paypal_order_id:
                request.paypal_order_id = paypal_order_id
            session.flush()
            record = WithdrawalRecord.model_validate(request)

        logger.info(f"Withdrawal request {request_id} processed, refund={record.refund_amount}")
        return record

    @staticmethod
    def _member(session, email: str) -> Entry:
        member = session.scalars(select(Entry).where(Entry.email == normalise_email(email))).one_or_none()
        if member is None:
            raise EntryNotFound(
                "Member not found with this email address. Please make sure you are registered first."
            )
        return member

    @staticmethod
    def _request(session, request_id: int) -> WithdrawalRequest:
        request = session.get(WithdrawalRequest, request_id)
        if request is None:
            raise WithdrawalNotFound(f"Withdrawal request {request_id} not found")
        return request

    @staticmethod
    def _require_status(request: WithdrawalRequest, expected: WithdrawalStatus, target: WithdrawalStatus) -> None:
        if request.status != expected.value:
            raise InvalidStateTransition(
                f"Cannot move withdrawal request from {request.status} to {target.value}"
            )
