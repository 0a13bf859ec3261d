from datetime import datetime
from typing import Callable

from sqlalchemy import select

from notifications.dispatcher import Dispatcher
from notifications.templates import InquiryReply

from .db import Storage, utcnow
from .errors import InquiryNotFound, MissingField
from .logger import get_logger
from .models import InquiryRecord, InquiryStatus, normalise_email
from .tables import Inquiry

logger = get_logger(__name__)


class InquiryService:
    def __init__(self, storage: Storage, dispatcher: Dispatcher, clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self.dispatcher = dispatcher
        self.clock = clock

    def submit(self, name: str, email: str, subject: str, message: str) -> InquiryRecord:
        if not all(v and v.strip() for v in (name, email, subject, message)):
            raise MissingField("All fields are required")

        with self.storage.session() as session:
            inquiry = Inquiry(
                name=name.strip(),
                email=normalise_email(email),
                subject=subject.strip(),
                message=message,
                status=InquiryStatus.PENDING.value,
                created_at=self.clock(),
            )
            session.add(inquiry)
            session.flush()
            record = InquiryRecord.model_validate(inquiry)

        logger.info(f"New inquiry received from {record.email}: {record.subject}")
        return record

    def list_inquiries(self) -> list[InquiryRecord]:
        with self.storage.session() as session:
            rows = session.scalars(select(Inquiry).order_by(Inquiry.created_at, Inquiry.id)).all()
            return [InquiryRecord.model_validate(row) for row in rows]

    def reply(self, inquiry_id: int, admin_reply: str) -> InquiryRecord:
        if not admin_reply or not admin_reply.strip():
            raise MissingField("Inquiry ID and reply are required")

        with self.storage.session() as session:
            inquiry = self._get(session, inquiry_id)
            inquiry.admin_reply = admin_reply
            inquiry.status = InquiryStatus.REPLIED.value
            inquiry.replied_at = self.clock()
            session.flush()
            record = InquiryRecord.model_validate(inquiry)

        self.dispatcher.dispatch(
            record.email,
            InquiryReply(member_name=record.name, original_subject=record.subject, admin_reply=admin_reply),
        )
        logger.info(f"Inquiry {inquiry_id} replied")
        return record

    def resolve(self, inquiry_id: int) -> InquiryRecord:
        with self.storage.session() as session:
            inquiry = self._get(session, inquiry_id)
            inquiry.status = InquiryStatus.RESOLVED.value
            session.flush()
            return InquiryRecord.model_validate(inquiry)

    @staticmethod
    def _get(session, inquiry_id: int) -> Inquiry:
        inquiry = session.get(Inquiry, inquiry_id)
        if inquiry is None:
            raise InquiryNotFound(f"Inquiry {inquiry_id} not found")
        return inquiry
