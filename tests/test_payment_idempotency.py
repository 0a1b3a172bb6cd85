"""
Comprehensive tests for payment creation idempotency
At most one payment per key, under retries and under concurrency
"""

import uuid
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from services.idempotency_service import OperationType
from utils.error_handler import ValidationError


def _create(services, actor, key, amount="100.00"):
    return services.payments.create_payment(actor, amount, "ZAR", "87654321", "ABCDUS33", key)


class TestPaymentIdempotency:
    """Test payment creation idempotency protection"""

    def test_repeat_returns_same_payment(self, services, alice):
        key = str(uuid.uuid4())
        first = _create(services, alice, key)
        second = _create(services, alice, key)

        assert not first.replayed
        assert second.replayed
        assert second.result == first.result
        assert services.store.run("count", services.store.count_payments) == 1

    def test_replay_is_verbatim_even_after_transitions(self, services, alice, staff):
        """The stored creation result is returned, not the current row"""
        key = str(uuid.uuid4())
        first = _create(services, alice, key)
        services.payments.verify(staff, first.result["id"])

        again = _create(services, alice, key)
        assert again.result["status"] == "PendingVerification"
        assert again.result["id"] == first.result["id"]

    def test_distinct_keys_create_distinct_payments(self, services, alice):
        one = _create(services, alice, str(uuid.uuid4()))
        two = _create(services, alice, str(uuid.uuid4()))
        assert one.result["id"] != two.result["id"]

    def test_key_is_scoped_to_its_account(self, services, alice, bob):
        """Another account presenting the key neither creates nor learns anything"""
        key = str(uuid.uuid4())
        _create(services, alice, key)

        with pytest.raises(ValidationError) as exc_info:
            _create(services, bob, key)
        assert "idempotencyKey" in exc_info.value.field_errors
        assert services.payments.list_own(bob) == []

    def test_key_lookup_after_canonicalisation(self, services, alice):
        key = uuid.uuid4()
        first = _create(services, alice, str(key))
        second = _create(services, alice, str(key).upper())
        assert second.replayed and second.result["id"] == first.result["id"]

    def test_failed_create_does_not_burn_the_key(self, services, alice):
        """Only successful creations are remembered"""
        key = str(uuid.uuid4())
        with pytest.raises(ValidationError):
            _create(services, alice, key, amount="0")

        created = _create(services, alice, key)
        assert not created.replayed

    def test_short_opaque_key(self, services, alice):
        first = _create(services, alice, "K1")
        second = _create(services, alice, "K1")

        assert second.replayed
        assert second.result["id"] == first.result["id"]
        assert services.payments.idempotency.lookup("K1").entity_id == first.result["id"]
        assert services.store.run("count", services.store.count_payments) == 1

    def test_record_stores_entity(self, services, alice):
        key = str(uuid.uuid4())
        created = _create(services, alice, key)

        record = services.payments.idempotency.lookup(key)
        assert record.entity_id == created.result["id"]
        assert record.account_id == alice.account_id
        assert record.operation_type == OperationType.PAYMENT_CREATE.value


class TestConcurrentCreation:

    def test_concurrent_creates_with_one_key_produce_one_row(self, services, alice):
        """N racing creates: exactly one row, every caller sees the same id"""
        key = str(uuid.uuid4())

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(lambda _: _create(services, alice, key), range(8)))

        ids = {outcome.result["id"] for outcome in outcomes}
        assert len(ids) == 1
        assert sum(1 for outcome in outcomes if not outcome.replayed) == 1
        assert services.store.run("count", services.store.count_payments) == 1

    def test_race_loser_replays_winner(self, services, alice):
        """A unique-key violation resolves to the committed winner's result"""
        key = str(uuid.uuid4())
        winner = _create(services, alice, key)

        # Simulate the loser having checked before the winner committed
        original_find = services.store.find_idempotency_record
        calls = {"count": 0}

        def stale_first_lookup(session, lookup_key):
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return original_find(session, lookup_key)

        with patch.object(services.store, "find_idempotency_record", side_effect=stale_first_lookup):
            loser = _create(services, alice, key)

        assert loser.replayed
        assert loser.result["id"] == winner.result["id"]
        assert services.store.run("count", services.store.count_payments) == 1

    def test_integrity_error_without_winner_propagates(self, services, alice):
        with patch.object(services.store, "insert_idempotency_record", side_effect=IntegrityError("x", {}, Exception())):
            with pytest.raises(IntegrityError):
                _create(services, alice, str(uuid.uuid4()))
