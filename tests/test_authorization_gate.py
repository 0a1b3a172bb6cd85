"""
Authorization Gate policy table and role enforcement
"""

import pytest

from services.authorization_gate import (
    POLICY, Actor, Audience, AuthorizationGate, Operation, Role,
)
from utils.error_handler import AuthenticationRequired, Forbidden

CUSTOMER = Actor(account_id=1, username="alice", role=Role.CUSTOMER)
STAFF = Actor(account_id=2, username="employee1", role=Role.STAFF)

STAFF_OPERATIONS = [
    Operation.LIST_BY_STATUS,
    Operation.VERIFY,
    Operation.SUBMIT,
    Operation.CREATE_STAFF_ACCOUNT,
]


class TestPolicyTable:

    def test_every_operation_has_a_policy(self):
        assert set(POLICY) == set(Operation)

    @pytest.mark.parametrize("operation", STAFF_OPERATIONS)
    def test_staff_only_operations(self, operation):
        assert POLICY[operation] == frozenset({Audience.STAFF})

    def test_registration_is_anonymous_only(self):
        assert POLICY[Operation.REGISTER] == frozenset({Audience.ANONYMOUS})


class TestAuthorize:

    @pytest.mark.parametrize("operation", STAFF_OPERATIONS)
    def test_customer_is_forbidden_from_staff_operations(self, operation):
        with pytest.raises(Forbidden):
            AuthorizationGate().authorize(CUSTOMER, operation)

    @pytest.mark.parametrize("operation", STAFF_OPERATIONS + [Operation.CREATE_PAYMENT, Operation.LIST_OWN])
    def test_anonymous_needs_authentication(self, operation):
        with pytest.raises(AuthenticationRequired):
            AuthorizationGate().authorize(None, operation)

    @pytest.mark.parametrize("operation", STAFF_OPERATIONS + [Operation.CREATE_PAYMENT, Operation.LIST_OWN])
    def test_staff_allowed(self, operation):
        assert AuthorizationGate().require(STAFF, operation) is STAFF

    @pytest.mark.parametrize("operation", [Operation.CREATE_PAYMENT, Operation.LIST_OWN])
    def test_customer_allowed_self_operations(self, operation):
        assert AuthorizationGate().require(CUSTOMER, operation) is CUSTOMER

    def test_registration_by_anonymous_caller(self):
        assert AuthorizationGate().authorize(None, Operation.REGISTER) is None

    def test_signed_in_caller_cannot_self_register(self):
        with pytest.raises(Forbidden):
            AuthorizationGate().authorize(CUSTOMER, Operation.REGISTER)


class TestServiceLevelEnforcement:
    """Customers never reach staff transitions, whatever the payment"""

    def test_customer_cannot_verify_submit_or_triage(self, services, alice):
        created = services.payments.create_payment(
            alice, "10.00", "USD", "87654321", "ABCDUS33", "5d6c3a1e-8f2b-4c9d-a1e0-7b6f5e4d3c2b"
        )
        payment_id = created.result["id"]

        with pytest.raises(Forbidden):
            services.payments.verify(alice, payment_id)
        with pytest.raises(Forbidden):
            services.payments.submit(alice, payment_id)
        with pytest.raises(Forbidden):
            services.payments.list_by_status(alice, "All")

    def test_forbidden_does_not_reveal_existence(self, services, alice):
        """A customer gets Forbidden for unknown ids too"""
        with pytest.raises(Forbidden):
            services.payments.verify(alice, "does-not-exist")

    def test_customer_cannot_create_staff(self, services, alice):
        with pytest.raises(Forbidden):
            services.accounts.create_staff_account(alice, {
                "fullName": "Sneaky Staff",
                "idNumber": "EMP999",
                "accountNumber": "90000099",
                "username": "sneaky",
                "password": "Password1!",
            })

    def test_staff_creates_staff(self, services, staff):
        account = services.accounts.create_staff_account(staff, {
            "fullName": "New Employee",
            "idNumber": "EMP003",
            "accountNumber": "90000003",
            "username": "employee3",
            "password": "Emp@67890",
        })
        assert account.is_staff
