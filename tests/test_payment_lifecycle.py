"""
Payment Lifecycle Engine: PendingVerification -> Verified -> SubmittedToSwift
"""

import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import update

from models import Payment, PaymentStatus
from utils.error_handler import (
    AlreadySubmitted, IncompleteRecord, NotFoundError, NotVerified, ValidationError,
)
from utils.payment_state_machine import PaymentStateValidator, PaymentTransition


def _create(services, actor, **overrides):
    args = {
        "amount": "100.00",
        "currency": "ZAR",
        "payee_account": "87654321",
        "swift_bic": "ABCDUS33",
        "idempotency_key": str(uuid.uuid4()),
    }
    args.update(overrides)
    return services.payments.create_payment(actor, **args).result


class TestStateMachine:

    def test_linear_progression(self):
        assert PaymentStateValidator.is_valid_transition(None, PaymentStatus.PENDING_VERIFICATION)
        assert PaymentStateValidator.is_valid_transition(PaymentStatus.PENDING_VERIFICATION, PaymentStatus.VERIFIED)
        assert PaymentStateValidator.is_valid_transition(PaymentStatus.VERIFIED, PaymentStatus.SUBMITTED_TO_SWIFT)

    def test_no_skipping_and_no_cycles(self):
        assert not PaymentStateValidator.is_valid_transition(
            PaymentStatus.PENDING_VERIFICATION, PaymentStatus.SUBMITTED_TO_SWIFT
        )
        assert not PaymentStateValidator.is_valid_transition(
            PaymentStatus.VERIFIED, PaymentStatus.PENDING_VERIFICATION
        )

    def test_submitted_is_terminal(self):
        assert PaymentStateValidator.is_terminal_state(PaymentStatus.SUBMITTED_TO_SWIFT)

    def test_transition_targets(self):
        assert PaymentStateValidator.target_of(PaymentTransition.VERIFY) is PaymentStatus.VERIFIED
        assert PaymentStateValidator.target_of(PaymentTransition.SUBMIT) is PaymentStatus.SUBMITTED_TO_SWIFT


class TestCreate:

    def test_new_payment_is_pending(self, services, alice):
        payment = _create(services, alice)

        assert payment["status"] == "PendingVerification"
        assert payment["isVerified"] is False
        assert payment["submittedToSwift"] is False
        assert payment["amountCents"] == 10000
        assert payment["provider"] == "SWIFT"
        assert payment["createdAt"].endswith("Z")
        assert payment["verifiedAt"] is None

    def test_invalid_input_creates_nothing(self, services, alice):
        with pytest.raises(ValidationError):
            _create(services, alice, amount="-1")
        assert services.store.run("count", services.store.count_payments) == 0


class TestVerifyAndSubmit:

    def test_verify_then_submit(self, services, alice, staff):
        payment = _create(services, alice)

        verified = services.payments.verify(staff, payment["id"])
        assert verified.status is PaymentStatus.VERIFIED
        assert verified.is_verified
        assert verified.verified_by_account_id == staff.account_id
        assert verified.verified_at is not None

        submitted = services.payments.submit(staff, payment["id"])
        assert submitted.status is PaymentStatus.SUBMITTED_TO_SWIFT
        assert submitted.submitted_to_swift
        assert submitted.submitted_at is not None
        assert submitted.verified_by_account_id == staff.account_id

    def test_submit_before_verify_fails(self, services, alice, staff):
        payment = _create(services, alice)
        with pytest.raises(NotVerified):
            services.payments.submit(staff, payment["id"])

    def test_reverify_keeps_original_verifier(self, services, alice, staff):
        payment = _create(services, alice)
        first = services.payments.verify(staff, payment["id"])
        again = services.payments.verify(staff, payment["id"])

        assert again.status is PaymentStatus.VERIFIED
        assert again.verified_at == first.verified_at
        assert again.verified_by_account_id == first.verified_by_account_id

    def test_everything_after_submission_is_rejected(self, services, alice, staff):
        payment = _create(services, alice)
        services.payments.verify(staff, payment["id"])
        services.payments.submit(staff, payment["id"])

        with pytest.raises(AlreadySubmitted):
            services.payments.submit(staff, payment["id"])
        with pytest.raises(AlreadySubmitted):
            services.payments.verify(staff, payment["id"])

    def test_unknown_payment(self, services, staff):
        with pytest.raises(NotFoundError):
            services.payments.verify(staff, str(uuid.uuid4()))
        with pytest.raises(NotFoundError):
            services.payments.submit(staff, str(uuid.uuid4()))

    def test_incomplete_record_cannot_be_verified(self, services, alice, staff):
        payment = _create(services, alice)
        services.store.run(
            "blank_bic",
            lambda db: db.execute(update(Payment).where(Payment.id == payment["id"]).values(swift_bic="  ")),
        )
        with pytest.raises(IncompleteRecord):
            services.payments.verify(staff, payment["id"])

    def test_concurrent_submits_release_once(self, services, alice, staff):
        """Racing submits: one succeeds, the rest observe AlreadySubmitted"""
        payment = _create(services, alice)
        services.payments.verify(staff, payment["id"])

        def attempt(_):
            try:
                services.payments.submit(staff, payment["id"])
                return "submitted"
            except AlreadySubmitted:
                return "already"

        with ThreadPoolExecutor(max_workers=4) as pool:
            outcomes = list(pool.map(attempt, range(4)))

        assert outcomes.count("submitted") == 1
        assert outcomes.count("already") == 3


class TestListing:

    def test_list_own_is_newest_first_and_private(self, services, alice, bob):
        first = _create(services, alice, amount="1.00")
        second = _create(services, alice, amount="2.00")
        _create(services, bob, amount="3.00")

        own = services.payments.list_own(alice)
        assert [p.id for p in own] == [second["id"], first["id"]]
        assert all(p.account_id == alice.account_id for p in own)

    def test_staff_list_is_oldest_first_with_owner(self, services, alice, bob, staff):
        first = _create(services, alice)
        second = _create(services, bob)
        services.payments.verify(staff, second["id"])

        pending = services.payments.list_by_status(staff, "PendingVerification")
        everything = services.payments.list_by_status(staff, "All")
        verified = services.payments.list_by_status(staff, "Verified")

        assert [p.id for p in pending] == [first["id"]]
        assert pending[0].customer_username == "alice"
        assert pending[0].customer_full_name == "Alice Smith"
        assert [p.id for p in everything] == [first["id"], second["id"]]
        assert [p.id for p in verified] == [second["id"]]
        assert services.payments.list_by_status(staff, "SubmittedToSwift") == []

    def test_staff_list_rejects_unknown_status(self, services, staff):
        with pytest.raises(ValidationError):
            services.payments.list_by_status(staff, "Pending")

    def test_staff_view_serialization(self, services, alice, staff):
        _create(services, alice)
        rows = services.payments.serialize_many(services.payments.list_by_status(staff, "All"), staff_view=True)
        assert rows[0]["customerUsername"] == "alice"
        assert "customerUsername" not in services.payments.serialize_many(services.payments.list_own(alice))[0]
