"""
Payment State Machine
Strict linear progression: PendingVerification -> Verified -> SubmittedToSwift
"""

import logging
from enum import Enum
from typing import Dict, Optional, Set

from models import PaymentStatus

logger = logging.getLogger(__name__)


class PaymentTransition(Enum):
    """Valid payment state transitions"""

    CREATE = "create"  # None -> PENDING_VERIFICATION
    VERIFY = "verify"  # PENDING_VERIFICATION -> VERIFIED
    SUBMIT = "submit"  # VERIFIED -> SUBMITTED_TO_SWIFT


class PaymentStateValidator:
    """Validates payment state transitions and prevents invalid changes"""

    VALID_TRANSITIONS: Dict[Optional[PaymentStatus], Set[PaymentStatus]] = {
        None: {PaymentStatus.PENDING_VERIFICATION},
        PaymentStatus.PENDING_VERIFICATION: {PaymentStatus.VERIFIED},
        # Re-verifying before release leaves the record where it is
        PaymentStatus.VERIFIED: {PaymentStatus.VERIFIED, PaymentStatus.SUBMITTED_TO_SWIFT},
        # Terminal
        PaymentStatus.SUBMITTED_TO_SWIFT: set(),
    }

    TRANSITION_TARGETS: Dict[PaymentTransition, PaymentStatus] = {
        PaymentTransition.CREATE: PaymentStatus.PENDING_VERIFICATION,
        PaymentTransition.VERIFY: PaymentStatus.VERIFIED,
        PaymentTransition.SUBMIT: PaymentStatus.SUBMITTED_TO_SWIFT,
    }

    @classmethod
    def is_valid_transition(cls, current_status: Optional[PaymentStatus], new_status: PaymentStatus) -> bool:
        return new_status in cls.VALID_TRANSITIONS.get(current_status, set())

    @classmethod
    def target_of(cls, transition: PaymentTransition) -> PaymentStatus:
        return cls.TRANSITION_TARGETS[transition]

    @classmethod
    def is_terminal_state(cls, status: PaymentStatus) -> bool:
        """Check if status is terminal (no further transitions)"""
        return len(cls.VALID_TRANSITIONS.get(status, set())) == 0
