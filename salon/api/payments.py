"""Payment intent, confirmation, webhook and refund endpoints."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.concurrency import run_in_threadpool

from salon.api.deps import get_container, get_principal, pagination, require
from salon.api.rate_limit import PAYMENT_SCOPE, throttle
from salon.auth import Permission, Principal, authorize
from salon.container import Container
from salon.errors import NotFoundError
from salon.logging_context import get_request_logger
from salon.schemas.booking_schema import Booking
from salon.schemas.payment_schema import (
    ConfirmPaymentRequest,
    Payment,
    PaymentIntentRequest,
    PaymentIntentResponse,
    PaymentStatus,
    RefundRequest,
)
from salon.storage.base import MAX_PAGE_SIZE, PaymentQuery

logger = get_request_logger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


def _payment_view(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "status": payment.status.value,
        "amount_cents": payment.amount_cents,
        "refunded_cents": payment.refunded_cents,
        "currency": payment.currency,
    }


def _booking_view(booking: Booking) -> dict:
    return {
        "id": booking.id,
        "status": booking.status.value,
        "payment_status": booking.payment_status.value,
    }


@router.post("/create-payment-intent", dependencies=[Depends(throttle(PAYMENT_SCOPE))])
def create_payment_intent(
    payload: PaymentIntentRequest, container: Container = Depends(get_container)
):
    payment, intent = container.payments.create_intent(payload)
    return PaymentIntentResponse(
        client_secret=intent.client_secret,
        payment_intent_id=intent.id,
        payment_id=payment.id,
    ).model_dump()


@router.post("/confirm-payment")
def confirm_payment(
    payload: ConfirmPaymentRequest, container: Container = Depends(get_container)
):
    booking, payment = container.payments.confirm_payment(payload.payment_intent_id)
    return {"success": True, "payment": _payment_view(payment), "booking": _booking_view(booking)}


@router.post("/webhook")
async def provider_webhook(
    request: Request,
    stripe_signature: str = Header(""),
    container: Container = Depends(get_container),
):
    payload = await request.body()
    event = container.provider.parse_event(payload, stripe_signature)
    result = await run_in_threadpool(container.payments.handle_event, event)
    if result is not None:
        booking, _ = result
        logger.info("Webhook %s applied to booking %s", event["type"], booking.id)
    return {"received": True}


@router.get("")
def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    status: Optional[PaymentStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    principal: Principal = Depends(require("list_payments")),
    container: Container = Depends(get_container),
):
    query = PaymentQuery(
        status=status, created_from=start, created_to=end, skip=(page - 1) * limit, limit=limit
    )
    payments, total = container.payments.list_payments(query)
    return {
        "success": True,
        "payments": [p.model_dump(mode="json") for p in payments],
        "pagination": pagination(total, page, limit),
    }


@router.get("/{payment_id}")
def get_payment(
    payment_id: str,
    principal: Optional[Principal] = Depends(get_principal),
    container: Container = Depends(get_container),
):
    principal = authorize(principal, "view_payment")
    payment = container.payments.get_payment(payment_id)
    # Other customers' payments are reported as missing, not forbidden.
    if not principal.has(Permission.VIEW_PAYMENTS) and payment.customer_email.lower() != principal.email:
        raise NotFoundError("Payment not found")
    return {"success": True, "payment": payment.model_dump(mode="json")}


@router.post("/refund")
def refund_payment(
    payload: RefundRequest,
    principal: Principal = Depends(require("refund_payment")),
    container: Container = Depends(get_container),
):
    payment, booking, refund = container.payments.refund(
        payload.payment_id, payload.amount, payload.reason, principal.actor
    )
    return {
        "success": True,
        "refund": {"id": refund.id, "amount_cents": refund.amount_cents},
        "payment": _payment_view(payment),
        "booking": _booking_view(booking),
    }
