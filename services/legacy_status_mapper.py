"""
Legacy Status Mapping
Maps payment status values written by older releases onto the canonical
PaymentStatus values. New writes always store a canonical value.
"""

from typing import Optional, Set
import logging

from models import LEGACY_PENDING_STATUSES, PaymentStatus

logger = logging.getLogger(__name__)


class LegacyStatusMapper:
    """Equivalence classes between stored status strings and PaymentStatus"""

    # NULL, "Pending" and "pending" all predate PendingVerification
    PENDING_EQUIVALENTS: Set[Optional[str]] = {None, PaymentStatus.PENDING_VERIFICATION.value, *LEGACY_PENDING_STATUSES}

    @classmethod
    def to_payment_status(cls, stored: Optional[str]) -> PaymentStatus:
        """Read a stored status; unknown values fail loudly rather than guessing"""
        if stored in cls.PENDING_EQUIVALENTS:
            return PaymentStatus.PENDING_VERIFICATION
        try:
            return PaymentStatus(stored)
        except ValueError:
            logger.error(f"Unknown payment status in store: {stored!r}")
            raise

    @classmethod
    def is_legacy(cls, stored: Optional[str]) -> bool:
        return stored is None or stored in LEGACY_PENDING_STATUSES
