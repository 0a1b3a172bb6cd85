"""
Idempotency Key Service
At-most-once payment creation per caller-supplied key.

The durable record and the payment it describes are written in the same
transaction, and the unique constraint on the key turns concurrent creates
into one winner; a loser rolls back and replays the winner's stored result.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from services.credential_store import CredentialStore, IdempotencyRecord
from utils.error_handler import InternalError, ValidationError

logger = logging.getLogger(__name__)


class OperationType(Enum):
    """Types of operations that require idempotency"""
    PAYMENT_CREATE = "payment_create"


@dataclass(frozen=True)
class IdempotentResult:
    result: Dict[str, Any]
    replayed: bool


class IdempotencyService:
    """insert-or-return over the idempotency_keys table"""

    def __init__(self, store: CredentialStore):
        self.store = store

    def _replay(self, record: IdempotencyRecord, account_id: int, operation_type: OperationType) -> IdempotentResult:
        # Keys are per account: another account's key must not disclose its result
        if record.account_id != account_id or record.operation_type != operation_type.value:
            logger.warning(f"🔁 IDEMPOTENCY: key reused across accounts/operations (owner {record.account_id}, caller {account_id})")
            raise ValidationError(
                "Idempotency key already used",
                field_errors={"idempotencyKey": ["Idempotency key already used for another request"]},
            )
        if record.result is None:
            raise InternalError("Idempotency record has no stored result")
        logger.info(f"🔁 IDEMPOTENCY: replaying {operation_type.value} result for entity {record.entity_id}")
        return IdempotentResult(result=record.result, replayed=True)

    def lookup(self, key: str) -> Optional[IdempotencyRecord]:
        return self.store.run("find_idempotency_record", lambda session: self.store.find_idempotency_record(session, key))

    def run_once(
        self,
        key: str,
        account_id: int,
        operation_type: OperationType,
        produce: Callable[[Session], Tuple[str, Dict[str, Any]]],
    ) -> IdempotentResult:
        """
        Run ``produce`` at most once per key. ``produce`` writes its rows in
        the given session and returns (entity_id, result); the result is
        stored with the key and returned verbatim to every later caller.
        """

        def work(session: Session) -> IdempotentResult:
            existing = self.store.find_idempotency_record(session, key)
            if existing is not None:
                return self._replay(existing, account_id, operation_type)

            entity_id, result = produce(session)
            self.store.insert_idempotency_record(
                session, key, account_id, operation_type.value, entity_id, result
            )
            return IdempotentResult(result=result, replayed=False)

        try:
            return self.store.run(f"idempotent_{operation_type.value}", work)
        except IntegrityError:
            # Lost the race: the winner's transaction committed the key first
            winner = self.lookup(key)
            if winner is None:
                raise
            logger.info(f"🏁 IDEMPOTENCY: concurrent {operation_type.value} resolved to winner's entity {winner.entity_id}")
            return self._replay(winner, account_id, operation_type)
