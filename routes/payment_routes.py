"""
Payment Routes
Customer payment creation and listing, staff triage, verification and release
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from models import PaymentStatus
from routes.dependencies import RequestContext, csrf_protected, current_context, get_services
from services.service_container import PortalServices
from utils.error_handler import ValidationError
from utils.json_serialization import serialize_payment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


class PaymentRequest(BaseModel):
    amount: Optional[Any] = None
    currency: Optional[Any] = None
    provider: Optional[Any] = None
    payeeAccount: Optional[Any] = None
    swiftBic: Optional[Any] = None
    idempotencyKey: Optional[Any] = None


@router.post("")
def create_payment(
    body: PaymentRequest,
    context: RequestContext = Depends(csrf_protected),
    services: PortalServices = Depends(get_services),
):
    """201 with the new payment, or 200 with the payment first created for this key"""
    outcome = services.payments.create_payment(
        context.actor,
        amount=body.amount,
        currency=body.currency,
        payee_account=body.payeeAccount,
        swift_bic=body.swiftBic,
        idempotency_key=body.idempotencyKey,
        provider=body.provider,
    )
    return JSONResponse(
        content={"payment": outcome.result, "replayed": outcome.replayed},
        status_code=200 if outcome.replayed else 201,
    )


@router.get("")
def list_payments(
    role: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    context: RequestContext = Depends(current_context),
    services: PortalServices = Depends(get_services),
):
    """Own payments newest first, or with role=staff the triage list oldest first"""
    if role is None or role == "customer":
        payments = services.payments.list_own(context.actor)
        return {"payments": services.payments.serialize_many(payments)}

    if role != "staff":
        raise ValidationError("Invalid role", field_errors={"role": ["Must be customer or staff"]})

    # An absent filter means the pending queue; an empty or unknown one is rejected
    requested = PaymentStatus.PENDING_VERIFICATION.value if status is None else status
    payments = services.payments.list_by_status(context.actor, requested)
    return {
        "status": requested,
        "payments": services.payments.serialize_many(payments, staff_view=True),
    }


@router.post("/{payment_id}/verify")
def verify_payment(
    payment_id: str,
    context: RequestContext = Depends(csrf_protected),
    services: PortalServices = Depends(get_services),
):
    payment = services.payments.verify(context.actor, payment_id)
    return {"payment": serialize_payment(payment)}


@router.post("/{payment_id}/submit")
def submit_payment(
    payment_id: str,
    context: RequestContext = Depends(csrf_protected),
    services: PortalServices = Depends(get_services),
):
    payment = services.payments.submit(context.actor, payment_id)
    return {"payment": serialize_payment(payment)}
