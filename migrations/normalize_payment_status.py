"""
Payment Status Normalization Migration
Rewrites legacy payment statuses to the canonical PendingVerification value

Migration: normalize_payment_status
Purpose: Older rows were written with "Pending", "pending" or no status at all. After this
runs every row carries one of PendingVerification, Verified, SubmittedToSwift.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import logging
from typing import Optional, Tuple

from sqlalchemy.orm import sessionmaker

from database import SessionLocal
from services.credential_store import CredentialStore
from models import LEGACY_PENDING_STATUSES

logger = logging.getLogger(__name__)


def upgrade(session_factory: Optional[sessionmaker] = None) -> Tuple[int, int]:
    """Normalize legacy statuses; returns (legacy, null) rows rewritten"""
    store = CredentialStore(session_factory or SessionLocal)
    logger.info("🔧 Starting payment status normalization migration...")

    try:
        legacy_count, null_count = store.run(
            "normalize_payment_status",
            lambda session: store.normalize_legacy_statuses(session, LEGACY_PENDING_STATUSES),
        )
    except Exception as e:
        logger.error(f"❌ Migration failed: {e}")
        raise

    logger.info(
        f"✅ Migration complete. Rewrote {legacy_count} legacy and {null_count} empty status(es) "
        f"to PendingVerification"
    )
    return legacy_count, null_count


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    upgrade()
