"""
JSON Serialization Utilities
Response shapes for accounts and payments. Password digests and national ids
never leave the service.
"""

from typing import Any, Dict

from services.credential_store import AccountRecord, PaymentRecord
from utils.datetime_helpers import to_iso


def serialize_payment(payment: PaymentRecord, staff_view: bool = False) -> Dict[str, Any]:
    """Customer view, plus the owner's display fields for staff"""
    data: Dict[str, Any] = {
        "id": payment.id,
        "amountCents": payment.amount_cents,
        "currency": payment.currency,
        "provider": payment.provider,
        "payeeAccount": payment.payee_account,
        "swiftBic": payment.swift_bic,
        "status": payment.status.value,
        "isVerified": payment.is_verified,
        "submittedToSwift": payment.submitted_to_swift,
        "createdAt": to_iso(payment.created_at),
        "verifiedAt": to_iso(payment.verified_at),
        "submittedAt": to_iso(payment.submitted_at),
    }
    if staff_view:
        data["customerUsername"] = payment.customer_username
        data["customerFullName"] = payment.customer_full_name
        data["verifiedByAccountId"] = payment.verified_by_account_id
    return data


def serialize_account(account: AccountRecord) -> Dict[str, Any]:
    return {
        "id": account.id,
        "username": account.username,
        "fullName": account.full_name,
        "isStaff": account.is_staff,
    }
