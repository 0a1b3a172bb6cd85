"""
Payment Lifecycle Engine
Owns payment creation (idempotent per key) and the staff-only verify and
submit transitions. Every transition re-reads the row inside its own
transaction, so a retried or concurrent call re-checks its preconditions
against committed state instead of applying twice.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from services.authorization_gate import Actor, AuthorizationGate, Operation
from services.credential_store import CredentialStore, PaymentRecord
from services.idempotency_service import IdempotencyService, IdempotentResult, OperationType
from utils.datetime_helpers import get_naive_utc_now
from utils.decimal_precision import MonetaryDecimal
from utils.error_handler import AlreadySubmitted, IncompleteRecord, NotFoundError, NotVerified
from utils.input_validation import InputValidator
from utils.json_serialization import serialize_payment
from utils.payment_state_machine import PaymentStateValidator, PaymentTransition

logger = logging.getLogger(__name__)


class PaymentLifecycleEngine:
    """create / verify / submit / list, gated by the AuthorizationGate"""

    def __init__(self, store: CredentialStore, gate: AuthorizationGate,
                 idempotency: Optional[IdempotencyService] = None):
        self.store = store
        self.gate = gate
        self.idempotency = idempotency or IdempotencyService(store)
        self.validator = PaymentStateValidator()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_payment(
        self,
        actor: Optional[Actor],
        amount: Any,
        currency: Any,
        payee_account: Any,
        swift_bic: Any,
        idempotency_key: Any,
        provider: Any = None,
    ) -> IdempotentResult:
        """
        Create a PendingVerification payment owned by the actor. A key seen
        before returns the result produced the first time.
        """
        actor = self.gate.require(actor, Operation.CREATE_PAYMENT)
        request = InputValidator.validate_payment({
            "amount": amount,
            "currency": currency,
            "provider": provider,
            "payeeAccount": payee_account,
            "swiftBic": swift_bic,
            "idempotencyKey": idempotency_key,
        })

        def produce(session: Session):
            payment = self.store.insert_payment(
                session,
                account_id=actor.account_id,
                amount_cents=request.amount_cents,
                currency=request.currency,
                provider=request.provider,
                payee_account=request.payee_account,
                swift_bic=request.swift_bic,
                created_at=get_naive_utc_now(),
            )
            return payment.id, serialize_payment(payment)

        outcome = self.idempotency.run_once(
            request.idempotency_key, actor.account_id, OperationType.PAYMENT_CREATE, produce
        )
        if not outcome.replayed:
            logger.info(
                f"💸 PAYMENT_CREATED: {outcome.result['id']} by account {actor.account_id} "
                f"for {MonetaryDecimal.format_amount(request.amount_cents, request.currency)}"
            )
        return outcome

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _load_for_transition(self, session: Session, payment_id: str) -> PaymentRecord:
        payment = self.store.find_payment_for_update(session, str(payment_id))
        if payment is None:
            raise NotFoundError()
        return payment

    def verify(self, actor: Optional[Actor], payment_id: str) -> PaymentRecord:
        """Staff confirm payee account and BIC; re-verifying before release changes nothing"""
        actor = self.gate.require(actor, Operation.VERIFY)
        target = self.validator.target_of(PaymentTransition.VERIFY)

        def work(session: Session) -> PaymentRecord:
            payment = self._load_for_transition(session, payment_id)

            if payment.submitted_to_swift or self.validator.is_terminal_state(payment.status):
                raise AlreadySubmitted()
            if not (payment.payee_account or "").strip() or not (payment.swift_bic or "").strip():
                raise IncompleteRecord()
            if payment.is_verified:
                return payment
            if not self.validator.is_valid_transition(payment.status, target):
                raise AlreadySubmitted()

            now = get_naive_utc_now()
            applied = self.store.update_payment_fields(
                session,
                payment.id,
                is_verified=True,
                status=target,
                verified_by_account_id=actor.account_id,
                verified_at=now,
            )
            if not applied:
                raise AlreadySubmitted()

            logger.info(
                f"✅ PAYMENT_VERIFIED: {payment.id} {payment.status.value} -> {target.value} "
                f"by staff {actor.account_id}"
            )
            return self.store.find_payment_for_update(session, payment.id)

        return self.store.run("verify_payment", work)

    def submit(self, actor: Optional[Actor], payment_id: str) -> PaymentRecord:
        """Release a verified payment; terminal"""
        actor = self.gate.require(actor, Operation.SUBMIT)
        target = self.validator.target_of(PaymentTransition.SUBMIT)

        def work(session: Session) -> PaymentRecord:
            payment = self._load_for_transition(session, payment_id)

            if payment.submitted_to_swift:
                raise AlreadySubmitted()
            if not payment.is_verified:
                raise NotVerified()
            if not self.validator.is_valid_transition(payment.status, target):
                raise NotVerified()

            applied = self.store.update_payment_fields(
                session,
                payment.id,
                submitted_to_swift=True,
                status=target,
                submitted_at=get_naive_utc_now(),
            )
            if not applied:
                raise AlreadySubmitted()

            logger.info(
                f"🚀 PAYMENT_SUBMITTED: {payment.id} {payment.status.value} -> "
                f"{target.value} by staff {actor.account_id}"
            )
            return self.store.find_payment_for_update(session, payment.id)

        return self.store.run("submit_payment", work)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_own(self, actor: Optional[Actor]) -> List[PaymentRecord]:
        """The actor's own payments, newest first"""
        actor = self.gate.require(actor, Operation.LIST_OWN)
        return self.store.run(
            "list_own_payments", lambda session: self.store.query_payments_by_owner(session, actor.account_id)
        )

    def list_by_status(self, actor: Optional[Actor], status: Optional[str]) -> List[PaymentRecord]:
        """Staff triage list, oldest first; status is a PaymentStatus value or "All" """
        self.gate.require(actor, Operation.LIST_BY_STATUS)
        status_filter = InputValidator.validate_status_filter(status)
        return self.store.run(
            "list_payments_by_status", lambda session: self.store.query_payments_by_status(session, status_filter)
        )

    def serialize_many(self, payments: List[PaymentRecord], staff_view: bool = False) -> List[Dict[str, Any]]:
        return [serialize_payment(payment, staff_view=staff_view) for payment in payments]
