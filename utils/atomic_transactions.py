"""Atomic transaction utilities for account, session and payment operations"""

import logging
import random
import time
from contextlib import contextmanager
from typing import Callable, Generator, Optional, TypeVar
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.exc import OperationalError

from config import Config
from database import is_transient_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


@contextmanager
def atomic_transaction(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Fresh session committed on success, rolled back on any error, always closed"""
    session = session_factory()
    try:
        yield session
        session.commit()
        logger.debug("Sync atomic transaction committed successfully")
    except Exception as e:
        session.rollback()
        logger.debug(f"Sync transaction rolled back due to error: {e}")
        raise
    finally:
        session.close()


def run_in_transaction(
    session_factory: sessionmaker,
    work: Callable[[Session], T],
    operation: str,
    max_retries: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
) -> T:
    """
    Run ``work`` in its own transaction, retrying transient store failures.

    Every attempt starts a fresh transaction and re-runs ``work`` from the
    top, so preconditions are re-checked against the committed state. Non
    transient errors propagate immediately.
    """
    max_retries = Config.STORE_MAX_RETRIES if max_retries is None else max_retries
    backoff_seconds = Config.STORE_RETRY_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds

    attempt = 0
    while True:
        try:
            with atomic_transaction(session_factory) as session:
                return work(session)
        except OperationalError as e:
            if attempt >= max_retries or not is_transient_error(e):
                logger.error(f"❌ STORE: {operation} failed after {attempt + 1} attempt(s): {e}")
                raise
            attempt += 1
            delay = backoff_seconds * attempt + random.uniform(0, backoff_seconds)
            logger.warning(
                f"🔄 STORE: transient failure in {operation}, retrying "
                f"(attempt {attempt + 1}/{max_retries + 1}) in {delay:.3f}s: {e}"
            )
            time.sleep(delay)
