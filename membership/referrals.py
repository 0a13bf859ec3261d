from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .db import Storage
from .errors import EntryNotFound, InvalidReferralCode, ReferrerInactive, SelfReferral
from .logger import get_logger
from .models import (
    EntryStatus,
    ReferralCheck,
    ReferralLink,
    ReferralSummary,
    ReferredMember,
    normalise_email,
)
from .tables import Entry

logger = get_logger(__name__)


def mask_email(email: str) -> str:
    local, _, domain = email.partition("@")
    return f"{local[:3]}***@{domain}"


def validate_referrer(session: Session, code: str, paying_email: str) -> Entry:
    """Resolve a referral code to an active referrer who is not the payer."""
    referrer = session.scalars(select(Entry).where(Entry.ref == code)).one_or_none()
    if referrer is None:
        logger.warning(f"Invalid referral code: {code}")
        raise InvalidReferralCode()
    if referrer.email == paying_email:
        logger.warning(f"Self-referral attempt: {paying_email}")
        raise SelfReferral()
    if referrer.status != EntryStatus.ACTIVE.value:
        logger.warning(f"Inactive referrer: {code}")
        raise ReferrerInactive()
    return referrer


def attach_referrer(session: Session, entry_id: int, referrer_id: int, code: str) -> bool:
    """Link ``entry_id`` to its referrer unless it already has one.

    The first referral wins. When the link is made the referrer's counter
    goes up by one, in the caller's transaction.
    """
    linked = session.execute(
        update(Entry)
        .where(Entry.id == entry_id, Entry.referred_by.is_(None))
        .values(referred_by=referrer_id, referral_code=code)
    ).rowcount
    if not linked:
        return False

    session.execute(
        update(Entry)
        .where(Entry.id == referrer_id)
        .values(referral_count=Entry.referral_count + 1)
    )
    logger.info(f"Referral recorded: entry {entry_id} referred by {referrer_id}")
    return True


class ReferralLedger:
    def __init__(self, storage: Storage):
        self.storage = storage

    def check_code(self, code: Optional[str]) -> ReferralCheck:
        if not code or not code.strip():
            return ReferralCheck(valid=False, message="Please enter a referral code.")

        with self.storage.session() as session:
            referrer = session.scalars(select(Entry).where(Entry.ref == code.strip())).one_or_none()
            if referrer is None:
                return ReferralCheck(valid=False, message="Invalid referral code. Please check and try again.")
            if referrer.status != EntryStatus.ACTIVE.value:
                return ReferralCheck(valid=False, message="This referral code belongs to an inactive member.")
            return ReferralCheck(
                valid=True,
                referrer_name=referrer.name,
                referrer_id=referrer.id,
                message=f"Valid referral from {referrer.name}",
            )

    def referrals_for(self, email: str) -> ReferralSummary:
        email = normalise_email(email)
        with self.storage.session() as session:
            referrer = session.scalars(select(Entry).where(Entry.email == email)).one_or_none()
            if referrer is None:
                raise EntryNotFound("Member not found with this email address")

            referred = session.scalars(
                select(Entry).where(Entry.referred_by == referrer.id).order_by(Entry.timestamp)
            ).all()
            members = [
                ReferredMember(
                    name=r.name,
                    email=mask_email(r.email),
                    ref=r.ref,
                    status=r.status,
                    join_date=r.timestamp,
                )
                for r in referred
            ]
            return ReferralSummary(
                name=referrer.name,
                ref=referrer.ref,
                referral_count=referrer.referral_count,
                total_referrals=len(members),
                referrals=members,
            )

    def share_link(self, email: str, base_url: str) -> ReferralLink:
        email = normalise_email(email)
        with self.storage.session() as session:
            entry = session.scalars(select(Entry).where(Entry.email == email)).one_or_none()
            if entry is None:
                raise EntryNotFound("Email not found. Please make sure you are registered first.")
            return ReferralLink(
                share_link=f"{base_url.rstrip('/')}/?referral={entry.ref}",
                your_ref=entry.ref,
                your_name=entry.name,
            )
