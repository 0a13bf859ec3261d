from typing import Optional

from sqlalchemy import delete, select, update

from notifications.dispatcher import Dispatcher
from notifications.templates import DuePaymentReminder

from . import config
from .db import Storage
from .errors import EntryNotFound, EntryReferencedByWinner, EntryReferencedByWithdrawal
from .logger import get_logger
from .models import EmailStatus, EntryRecord, EntryStatus, normalise_email
from .tables import Entry, Winner, WithdrawalRequest

logger = get_logger(__name__)

STATUS_MESSAGES = {
    EntryStatus.ACTIVE: "You are already registered and active for this month.",
    EntryStatus.EXPIRED: "Your membership has expired. Please renew to participate.",
    EntryStatus.WINNER_PAID: "You were a previous winner. You can register again for new draws.",
}


class MembershipLedger:
    def __init__(self, storage: Storage, dispatcher: Dispatcher):
        self.storage = storage
        self.dispatcher = dispatcher

    def get(self, entry_id: int) -> EntryRecord:
        with self.storage.session() as session:
            entry = session.get(Entry, entry_id)
            if entry is None:
                raise EntryNotFound(f"Entry {entry_id} not found")
            return EntryRecord.model_validate(entry)

    def get_by_email(self, email: str) -> Optional[EntryRecord]:
        with self.storage.session() as session:
            entry = session.scalars(select(Entry).where(Entry.email == normalise_email(email))).one_or_none()
            return EntryRecord.model_validate(entry) if entry else None

    def list_entries(self) -> list[EntryRecord]:
        with self.storage.session() as session:
            rows = session.scalars(select(Entry).order_by(Entry.timestamp, Entry.id)).all()
            return [EntryRecord.model_validate(row) for row in rows]

    def email_status(self, email: str) -> EmailStatus:
        entry = self.get_by_email(email)
        if entry is None:
            return EmailStatus(exists=False, message="Email available for registration.")
        return EmailStatus(exists=True, status=entry.status, message=STATUS_MESSAGES[entry.status])

    def delete_entry(self, entry_id: int) -> EntryRecord:
        """Admin removal. Blocked, never cascaded, while a winner or a
        withdrawal request points at the entry."""
        with self.storage.session() as session:
            entry = session.get(Entry, entry_id)
            if entry is None:
                raise EntryNotFound(f"Entry {entry_id} not found")

            winner_status = session.scalar(
                select(Winner.payment_status).where(Winner.entry_id == entry_id).limit(1)
            )
            if winner_status is not None:
                raise EntryReferencedByWinner(
                    f"Cannot delete entry: it is referenced by a winner ({winner_status}). "
                    "Complete winner payment process first."
                )

            has_withdrawal = session.scalar(
                select(WithdrawalRequest.id).where(WithdrawalRequest.entry_id == entry_id).limit(1)
            )
            if has_withdrawal is not None:
                raise EntryReferencedByWithdrawal(
                    "Cannot delete entry: it has a withdrawal request on record."
                )

            deleted = EntryRecord.model_validate(entry)
            session.execute(
                update(Entry).where(Entry.referred_by == entry_id).values(referred_by=None)
            )
            session.execute(delete(Entry).where(Entry.id == entry_id))

        logger.info(f"Entry deleted: id={deleted.id} email={deleted.email} ref={deleted.ref}")
        return deleted

    def monthly_reset(self) -> int:
        """Expire every active entry and remind each affected member to renew.

        Returns the number of entries expired; zero active entries is a no-op.
        """
        logger.info("Running monthly status reset")
        with self.storage.session() as session:
            active = session.execute(
                select(Entry.id, Entry.name, Entry.email).where(Entry.status == EntryStatus.ACTIVE.value)
            ).all()
            if not active:
                logger.info("No active entries to reset")
                return 0

            session.execute(
                update(Entry)
                .where(Entry.id.in_([row.id for row in active]), Entry.status == EntryStatus.ACTIVE.value)
                .values(status=EntryStatus.EXPIRED.value)
            )

        logger.info(f"Monthly reset complete: {len(active)} entries set to expired")

        for row in active:
            self.dispatcher.dispatch(
                row.email, DuePaymentReminder(member_name=row.name, due_date=config.RENEWAL_DEADLINE_TEXT)
            )
        logger.info(f"Queued renewal reminders for {len(active)} members")
        return len(active)
