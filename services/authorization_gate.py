"""
Authorization Gate
Resolves an acting account into a role-tagged Actor and checks every
lifecycle operation against a single policy table.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from services.credential_store import AccountRecord
from utils.error_handler import AuthenticationRequired, Forbidden

logger = logging.getLogger(__name__)


class Role(Enum):
    """Capability sets; an account carries exactly one"""
    CUSTOMER = "customer"
    STAFF = "staff"


class Audience(Enum):
    """Who a policy row admits"""
    ANONYMOUS = "anonymous"
    CUSTOMER = "customer"
    STAFF = "staff"


class Operation(Enum):
    """Every gated operation of the portal"""
    REGISTER = "register"
    CREATE_PAYMENT = "create_payment"
    LIST_OWN = "list_own"
    LIST_BY_STATUS = "list_by_status"
    VERIFY = "verify"
    SUBMIT = "submit"
    CREATE_STAFF_ACCOUNT = "create_staff_account"


AUTHENTICATED: FrozenSet[Audience] = frozenset({Audience.CUSTOMER, Audience.STAFF})
STAFF_ONLY: FrozenSet[Audience] = frozenset({Audience.STAFF})

POLICY: Dict[Operation, FrozenSet[Audience]] = {
    Operation.REGISTER: frozenset({Audience.ANONYMOUS}),
    Operation.CREATE_PAYMENT: AUTHENTICATED,
    Operation.LIST_OWN: AUTHENTICATED,
    Operation.LIST_BY_STATUS: STAFF_ONLY,
    Operation.VERIFY: STAFF_ONLY,
    Operation.SUBMIT: STAFF_ONLY,
    Operation.CREATE_STAFF_ACCOUNT: STAFF_ONLY,
}

_missing = set(Operation) - set(POLICY)
if _missing:
    raise RuntimeError(f"Authorization policy has no entry for: {sorted(op.value for op in _missing)}")


@dataclass(frozen=True)
class Actor:
    """Authenticated caller, tagged with its role"""
    account_id: int
    username: str
    role: Role

    @property
    def audience(self) -> Audience:
        return Audience.STAFF if self.role is Role.STAFF else Audience.CUSTOMER

    @property
    def is_staff(self) -> bool:
        return self.role is Role.STAFF

    @classmethod
    def from_account(cls, account: AccountRecord) -> "Actor":
        return cls(
            account_id=account.id,
            username=account.username,
            role=Role.STAFF if account.is_staff else Role.CUSTOMER,
        )


class AuthorizationGate:
    """authorize(actor, operation): returns the actor or raises"""

    def __init__(self, policy: Optional[Dict[Operation, FrozenSet[Audience]]] = None):
        self.policy = policy or POLICY

    def is_allowed(self, actor: Optional[Actor], operation: Operation) -> bool:
        audience = Audience.ANONYMOUS if actor is None else actor.audience
        return audience in self.policy[operation]

    def authorize(self, actor: Optional[Actor], operation: Operation) -> Optional[Actor]:
        """
        No session and the operation needs one -> AuthenticationRequired.
        A session whose role is not admitted -> Forbidden.
        """
        if self.is_allowed(actor, operation):
            return actor

        if actor is None:
            logger.info(f"🔒 AUTHZ: anonymous caller denied {operation.value}")
            raise AuthenticationRequired()

        logger.warning(
            f"🚫 AUTHZ: account {actor.account_id} ({actor.role.value}) denied {operation.value}"
        )
        raise Forbidden()

    def require(self, actor: Optional[Actor], operation: Operation) -> Actor:
        """authorize() for operations that always need an authenticated actor"""
        authorized = self.authorize(actor, operation)
        if authorized is None:
            raise AuthenticationRequired()
        return authorized
