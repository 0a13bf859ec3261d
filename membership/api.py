import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from notifications.dispatcher import Dispatcher
from notifications.templates import NotificationKind, notification_from_dict

from . import config
from .db import Storage, get_storage, utcnow
from .entries import MembershipLedger
from .errors import MembershipError
from .inquiries import InquiryService
from .logger import get_logger, setup_logger
from .models import (
    CaptureOrderRequest,
    ContactRequest,
    EmailLogRecord,
    EmailRequest,
    EmailStatus,
    EntryRecord,
    InquiryRecord,
    InquiryReplyRequest,
    InquiryResolveRequest,
    ReferralCheck,
    ReferralCodeRequest,
    ReferralLink,
    ReferralSummary,
    SelectWinnerRequest,
    SendEmailRequest,
    WinnerPaidRequest,
    WinnerRecord,
    WithdrawalCheck,
    WithdrawalProcessRequest,
    WithdrawalRecord,
    WithdrawalReviewRequest,
)
from .payments import PaymentGateway, PayPalClient
from .reconciler import Reconciler
from .reference import ReferenceAllocator
from .referrals import ReferralLedger
from .winners import WinnerLifecycle
from .withdrawals import WithdrawalService

logger = get_logger(__name__)


@dataclass
class Services:
    storage: Storage
    dispatcher: Dispatcher
    gateway: PaymentGateway
    ledger: MembershipLedger
    referrals: ReferralLedger
    reconciler: Reconciler
    winners: WinnerLifecycle
    withdrawals: WithdrawalService
    inquiries: InquiryService

    @classmethod
    def build(
        cls,
        storage: Storage,
        dispatcher: Optional[Dispatcher] = None,
        gateway: Optional[PaymentGateway] = None,
        allocator: Optional[ReferenceAllocator] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> "Services":
        dispatcher = dispatcher or Dispatcher(storage)
        return cls(
            storage=storage,
            dispatcher=dispatcher,
            gateway=gateway or PayPalClient(),
            ledger=MembershipLedger(storage, dispatcher),
            referrals=ReferralLedger(storage),
            reconciler=Reconciler(storage, dispatcher, allocator=allocator, clock=clock),
            winners=WinnerLifecycle(storage, clock=clock),
            withdrawals=WithdrawalService(storage, clock=clock),
            inquiries=InquiryService(storage, dispatcher, clock=clock),
        )


def admin_guard(admin_token: str) -> Callable[..., None]:
    def require_admin(
        x_admin_token: Optional[str] = Header(None),
        token: Optional[str] = Query(None),
    ) -> None:
        if not admin_token:
            logger.error("ADMIN_TOKEN is not configured; refusing admin request")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Admin authentication not configured",
            )
        supplied = x_admin_token or token
        if not supplied or not secrets.compare_digest(supplied, admin_token):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    return require_admin


def create_app(services: Services, admin_token: str = "", cors_origins: Optional[list[str]] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services.storage.create_all()
        yield
        services.dispatcher.shutdown(wait=True)

    app = FastAPI(
        title="Lucky Kameti API",
        description="Monthly lottery membership: payments, referrals, winners and refunds",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MembershipError)
    async def handle_membership_error(request: Request, exc: MembershipError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.kind}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "kind": exc.kind})

    # Public

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "lucky-kameti"}

    @app.get("/config", tags=["System"])
    def client_config():
        if not services.gateway.is_configured:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={
                    "detail": "PayPal service temporarily unavailable. Please contact support.",
                    "paypalClientId": None,
                },
            )
        return {"paypalClientId": services.gateway.client_id}

    @app.post("/create-order", tags=["Payments"])
    def create_order():
        return services.gateway.create_order()

    @app.post("/check-email", response_model=EmailStatus, tags=["Members"])
    def check_email(request: EmailRequest) -> EmailStatus:
        return services.ledger.email_status(request.email)

    @app.post("/validate-referral", response_model=ReferralCheck, tags=["Referrals"])
    def validate_referral(request: ReferralCodeRequest) -> ReferralCheck:
        return services.referrals.check_code(request.referral_code)

    @app.post("/capture-order", tags=["Payments"])
    def capture_order(request: CaptureOrderRequest):
        services.reconciler.precheck(request)
        payment = services.gateway.capture(request.order_id)
        try:
            result = services.reconciler.reconcile(payment, request)
        except Exception as e:
            logger.error(
                f"Order {payment.processor_order_id} was captured but not recorded for {request.email}: {e}"
            )
            raise

        message = "Membership renewed successfully!" if result.is_renewal else "Payment verified. Welcome aboard!"
        return {"success": True, "ref": result.reference_code, "isRenewal": result.is_renewal, "message": message}

    @app.get("/current-winner", tags=["Winners"])
    def current_winner():
        winner = services.winners.current_winner()
        return {"winner": winner.model_dump(by_alias=True, mode="json") if winner else None}

    @app.post("/contact", status_code=status.HTTP_201_CREATED, tags=["Inquiries"])
    def contact(request: ContactRequest):
        inquiry = services.inquiries.submit(request.name, request.email, request.subject, request.message)
        return {
            "success": True,
            "inquiryId": inquiry.id,
            "message": "Your message has been received. We will get back to you soon.",
        }

    @app.post("/check-withdrawal-eligibility", response_model=WithdrawalCheck, tags=["Withdrawals"])
    def check_withdrawal_eligibility(request: EmailRequest) -> WithdrawalCheck:
        return services.withdrawals.check(request.email)

    @app.post(
        "/submit-withdrawal-request",
        response_model=WithdrawalRecord,
        status_code=status.HTTP_201_CREATED,
        tags=["Withdrawals"],
    )
    def submit_withdrawal_request(request: EmailRequest) -> WithdrawalRecord:
        return services.withdrawals.submit(request.email)

    @app.post("/referrals/check-email", response_model=ReferralSummary, tags=["Referrals"])
    def referrals_for_email(request: EmailRequest) -> ReferralSummary:
        return services.referrals.referrals_for(request.email)

    @app.post("/get-referral-link", response_model=ReferralLink, tags=["Referrals"])
    def get_referral_link(request: EmailRequest, http_request: Request) -> ReferralLink:
        base_url = config.PUBLIC_BASE_URL or str(http_request.base_url)
        return services.referrals.share_link(request.email, base_url)

    # Admin

    admin = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(admin_guard(admin_token))])

    @admin.get("/entries", response_model=list[EntryRecord])
    def list_entries() -> list[EntryRecord]:
        return services.ledger.list_entries()

    @admin.delete("/entry/{entry_id}")
    def delete_entry(entry_id: int):
        deleted = services.ledger.delete_entry(entry_id)
        return {"success": True, "message": f"Entry {deleted.ref} deleted"}

    @admin.post("/select-winner", response_model=WinnerRecord)
    def select_winner(request: SelectWinnerRequest) -> WinnerRecord:
        return services.winners.select_winner(request.entry_id)

    @admin.post("/winner-paid", response_model=WinnerRecord)
    def winner_paid(request: WinnerPaidRequest) -> WinnerRecord:
        return services.winners.mark_paid(request.winner_id)

    @admin.delete("/winner/{winner_id}")
    def delete_winner(winner_id: int):
        services.winners.delete_winner(winner_id)
        return {"success": True, "message": f"Winner {winner_id} deleted"}

    @admin.get("/winners", response_model=list[WinnerRecord])
    def list_winners() -> list[WinnerRecord]:
        return services.winners.list_winners()

    @admin.post("/send-email")
    def send_email(request: SendEmailRequest):
        data = request.model_dump()
        if not data.get("amount"):
            if request.type == NotificationKind.WINNER_NOTIFICATION.value:
                data["amount"] = config.WINNING_AMOUNT
            elif request.type == NotificationKind.PAYMENT_VERIFICATION.value:
                data["amount"] = config.ENTRY_FEE
        try:
            notification = notification_from_dict(request.type, data)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        result = services.dispatcher.send(request.email, notification)
        return {"success": result.success, "error": result.error}

    @admin.get("/email-logs", response_model=list[EmailLogRecord])
    def email_logs() -> list[EmailLogRecord]:
        return services.dispatcher.email_logs()

    @admin.get("/inquiries", response_model=list[InquiryRecord])
    def list_inquiries() -> list[InquiryRecord]:
        return services.inquiries.list_inquiries()

    @admin.post("/inquiry-reply", response_model=InquiryRecord)
    def inquiry_reply(request: InquiryReplyRequest) -> InquiryRecord:
        return services.inquiries.reply(request.inquiry_id, request.admin_reply)

    @admin.post("/inquiry-resolve", response_model=InquiryRecord)
    def inquiry_resolve(request: InquiryResolveRequest) -> InquiryRecord:
        return services.inquiries.resolve(request.inquiry_id)

    @admin.post("/monthly-reset")
    def monthly_reset():
        expired = services.ledger.monthly_reset()
        return {"success": True, "expired": expired}

    @admin.get("/withdrawals", response_model=list[WithdrawalRecord])
    def list_withdrawals() -> list[WithdrawalRecord]:
        return services.withdrawals.list_requests()

    @admin.post("/withdrawals/{request_id}/review", response_model=WithdrawalRecord)
    def review_withdrawal(request_id: int, request: WithdrawalReviewRequest) -> WithdrawalRecord:
        return services.withdrawals.review(request_id, request.approve, request.notes)

    @admin.post("/withdrawals/{request_id}/process", response_model=WithdrawalRecord)
    def process_withdrawal(request_id: int, request: WithdrawalProcessRequest) -> WithdrawalRecord:
        return services.withdrawals.mark_processed(request_id, request.notes, request.paypal_order_id)

    app.include_router(admin)
    return app


setup_logger("membership", level=config.LOG_LEVEL, log_file=config.LOG_FILE or None)
setup_logger("notifications", level=config.LOG_LEVEL, log_file=config.LOG_FILE or None)

app = create_app(Services.build(get_storage()), config.ADMIN_TOKEN, config.CORS_ORIGINS)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
