import pytest

from membership.errors import InquiryNotFound, MissingField
from membership.models import InquiryStatus


class TestInquiries:
    """Tests for the contact form and admin replies."""

    def test_submit(self, inquiries):
        inquiry = inquiries.submit("Asha", "Asha@Example.com", "Draw date", "When is the draw?")

        assert inquiry.status == InquiryStatus.PENDING
        assert inquiry.email == "asha@example.com"
        assert inquiries.list_inquiries() == [inquiry]

    @pytest.mark.parametrize("missing", ["name", "email", "subject", "message"])
    def test_all_fields_required(self, inquiries, missing):
        fields = {"name": "Asha", "email": "asha@example.com", "subject": "Hi", "message": "Hello"}
        fields[missing] = "  "

        with pytest.raises(MissingField):
            inquiries.submit(**fields)

    def test_reply_notifies_member(self, inquiries, transport):
        inquiry = inquiries.submit("Asha", "asha@example.com", "Draw date", "When is the draw?")

        replied = inquiries.reply(inquiry.id, "On the 1st of every month.")

        assert replied.status == InquiryStatus.REPLIED
        assert replied.admin_reply == "On the 1st of every month."
        assert replied.replied_at is not None
        to, subject, html = transport.sent[-1]
        assert to == "asha@example.com"
        assert subject == "Re: Draw date - Lucky Kameti Support"
        assert "On the 1st of every month." in html

    def test_resolve(self, inquiries):
        inquiry = inquiries.submit("Asha", "asha@example.com", "Draw date", "When is the draw?")

        assert inquiries.resolve(inquiry.id).status == InquiryStatus.RESOLVED

    def test_unknown_inquiry(self, inquiries):
        with pytest.raises(InquiryNotFound):
            inquiries.reply(3, "hello")
        with pytest.raises(InquiryNotFound):
            inquiries.resolve(3)
