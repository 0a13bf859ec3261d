from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from . import config
from .db import Storage, utcnow
from .errors import (
    EntryNotActive,
    EntryNotFound,
    InvalidStateTransition,
    WinnerAlreadyPending,
    WinnerNotFound,
)
from .logger import get_logger
from .models import EntryStatus, WinnerPaymentStatus, WinnerRecord
from .tables import Entry, Winner

logger = get_logger(__name__)


class WinnerLifecycle:
    """none selected -> pending -> paid, with admin deletion from any state.

    At most one pending winner exists at a time. The check below gives a
    readable error; the partial unique index on ``winners`` settles races.
    """

    def __init__(self, storage: Storage, clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self.clock = clock

    def select_winner(self, entry_id: int) -> WinnerRecord:
        try:
            with self.storage.session() as session:
                entry = session.get(Entry, entry_id)
                if entry is None:
                    raise EntryNotFound(f"Entry {entry_id} not found")
                if entry.status != EntryStatus.ACTIVE.value:
                    raise EntryNotActive(
                        "Cannot select winner from inactive member. Only active members are eligible."
                    )
                if self._pending_winner_id(session) is not None:
                    raise WinnerAlreadyPending()

                winner = Winner(
                    name=entry.name,
                    email=entry.email,
                    ref=entry.ref,
                    entry_id=entry.id,
                    announce_date=self.clock(),
                    payment_status=WinnerPaymentStatus.PENDING.value,
                    winning_amount=config.WINNING_AMOUNT,
                )
                session.add(winner)
                session.flush()
                record = WinnerRecord.model_validate(winner)
        except IntegrityError:
            # lost the race against another selection
            raise WinnerAlreadyPending()

        logger.info(f"New winner selected: {record.name} ref={record.ref}")
        return record

    def mark_paid(self, winner_id: int) -> WinnerRecord:
        with self.storage.session() as session:
            winner = session.get(Winner, winner_id)
            if winner is None:
                raise WinnerNotFound(f"Winner {winner_id} not found")
            if winner.payment_status != WinnerPaymentStatus.PENDING.value:
                raise InvalidStateTransition(f"Winner {winner_id} is already {winner.payment_status}")

            winner.payment_status = WinnerPaymentStatus.PAID.value
            winner.paid_at = self.clock()
            if winner.entry_id is not None:
                session.execute(
                    update(Entry)
                    .where(Entry.id == winner.entry_id)
                    .values(status=EntryStatus.WINNER_PAID.value)
                )
            session.flush()
            record = WinnerRecord.model_validate(winner)

        logger.info(f"Winner marked as paid: id={record.id} ref={record.ref}")
        return record

    def delete_winner(self, winner_id: int) -> WinnerRecord:
        with self.storage.session() as session:
            winner = session.get(Winner, winner_id)
            if winner is None:
                raise WinnerNotFound(f"Winner {winner_id} not found")
            record = WinnerRecord.model_validate(winner)
            session.execute(delete(Winner).where(Winner.id == winner_id))

        logger.info(f"Winner deleted: id={record.id} ref={record.ref}")
        return record

    def list_winners(self) -> list[WinnerRecord]:
        with self.storage.session() as session:
            rows = session.scalars(select(Winner).order_by(Winner.announce_date, Winner.id)).all()
            return [WinnerRecord.model_validate(row) for row in rows]

    def current_winner(self) -> Optional[WinnerRecord]:
        """The pending winner, else one paid within the recent window, else None."""
        with self.storage.session() as session:
            winner = session.scalars(
                select(Winner)
                .where(Winner.payment_status == WinnerPaymentStatus.PENDING.value)
                .order_by(Winner.announce_date)
                .limit(1)
            ).first()
            if winner is None:
                cutoff = self.clock() - config.RECENT_WINNER_WINDOW
                winner = session.scalars(
                    select(Winner)
                    .where(
                        Winner.payment_status == WinnerPaymentStatus.PAID.value,
                        Winner.paid_at > cutoff,
                    )
                    .order_by(Winner.paid_at.desc())
                    .limit(1)
                ).first()
            return WinnerRecord.model_validate(winner) if winner else None

    @staticmethod
    def _pending_winner_id(session) -> Optional[int]:
        return session.scalar(
            select(Winner.id).where(Winner.payment_status == WinnerPaymentStatus.PENDING.value).limit(1)
        )
