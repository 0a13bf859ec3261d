"""Error taxonomy for the membership service.

Every error carries a stable machine-readable ``kind`` and the HTTP status
class the API layer answers with.
"""


class MembershipError(Exception):
    kind = "membership_error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.kind)
        self.message = str(self)


class ValidationError(MembershipError):
    kind = "validation_error"
    status_code = 400


class ConflictError(MembershipError):
    kind = "conflict"
    status_code = 409


class NotFoundError(MembershipError):
    kind = "not_found"
    status_code = 404


class ExhaustionError(MembershipError):
    kind = "exhausted"
    status_code = 500


class ExternalServiceError(MembershipError):
    kind = "external_service_error"
    status_code = 502


class PersistenceError(MembershipError):
    kind = "persistence_error"
    status_code = 500


# Validation


class MissingField(ValidationError):
    """A required field is missing."""
    kind = "missing_field"


class TermsNotAccepted(ValidationError):
    """Terms and conditions must be accepted."""
    kind = "terms_not_accepted"


class InvalidReferralCode(ValidationError):
    """Invalid referral code."""
    kind = "invalid_referral_code"


class ReferrerInactive(ValidationError):
    """Referrer is not active."""
    kind = "referrer_inactive"


class SelfReferral(ValidationError):
    """Self-referral is not allowed."""
    kind = "self_referral"


class EntryNotActive(ValidationError):
    """Only active members are eligible."""
    kind = "entry_not_active"


class NotEligible(ValidationError):
    """Not eligible for withdrawal."""
    kind = "not_eligible"


# Conflicts


class AlreadyActive(ConflictError):
    """This email is already registered and active."""
    kind = "already_active"


class DuplicateEmail(ConflictError):
    """An entry with this email already exists."""
    kind = "duplicate_email"


class DuplicateWithdrawalRequest(ConflictError):
    """Withdrawal request already exists."""
    kind = "duplicate_withdrawal_request"


class WinnerAlreadyPending(ConflictError):
    """There is already a pending winner. Complete payment first."""
    kind = "winner_already_pending"


class EntryReferencedByWinner(ConflictError):
    """Entry is referenced by a winner."""
    kind = "entry_referenced_by_winner"


class EntryReferencedByWithdrawal(ConflictError):
    """Entry is referenced by a withdrawal request."""
    kind = "entry_referenced_by_withdrawal"


class InvalidStateTransition(ConflictError):
    kind = "invalid_state_transition"


# Not found


class EntryNotFound(NotFoundError):
    """Entry not found."""
    kind = "entry_not_found"


class WinnerNotFound(NotFoundError):
    """Winner not found."""
    kind = "winner_not_found"


class InquiryNotFound(NotFoundError):
    """Inquiry not found."""
    kind = "inquiry_not_found"


class WithdrawalNotFound(NotFoundError):
    """Withdrawal request not found."""
    kind = "withdrawal_not_found"


# Exhaustion / external


class ReferenceExhausted(ExhaustionError):
    """Failed to generate unique reference after multiple attempts."""
    kind = "reference_exhausted"


class PaymentMismatch(ExternalServiceError):
    """Payment amount verification failed."""
    kind = "payment_mismatch"


class PaymentCaptureFailed(ExternalServiceError):
    """Payment capture failed."""
    kind = "payment_capture_failed"


class PaymentServiceUnavailable(ExternalServiceError):
    """Payment service temporarily unavailable. Please try again later or contact support."""
    kind = "payment_service_unavailable"
    status_code = 503
