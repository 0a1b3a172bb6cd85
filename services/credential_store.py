"""
Credential Store
SQLAlchemy-backed persistence for accounts, sessions and payments.

Every method that touches rows takes the caller's ``Session`` so several
operations can share one transaction; ``run`` opens that transaction with
bounded retry for transient failures. Rows leave the store as frozen
records, never as live ORM objects.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from models import (
    Account, IdempotencyKey, LEGACY_PENDING_STATUSES, Payment, PaymentStatus, PortalSession,
)
from services.legacy_status_mapper import LegacyStatusMapper
from utils.atomic_transactions import run_in_transaction
from utils.error_handler import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class AccountRecord:
    id: int
    username: str
    full_name: str
    national_id: str
    account_number: str
    is_staff: bool
    created_at: datetime
    password_hash: str = field(repr=False, default="")

    @classmethod
    def from_row(cls, row: Account) -> "AccountRecord":
        return cls(
            id=row.id,
            username=row.username,
            full_name=row.full_name,
            national_id=row.national_id,
            account_number=row.account_number,
            is_staff=row.is_staff,
            created_at=row.created_at,
            password_hash=row.password_hash,
        )


@dataclass(frozen=True)
class SessionRecord:
    token_hash: str
    account_id: Optional[int]
    csrf_secret: Optional[str] = field(repr=False)
    csrf_issued_at: Optional[datetime]
    created_at: datetime
    expires_at: datetime

    @property
    def is_anonymous(self) -> bool:
        return self.account_id is None

    @classmethod
    def from_row(cls, row: PortalSession) -> "SessionRecord":
        return cls(
            token_hash=row.token_hash,
            account_id=row.account_id,
            csrf_secret=row.csrf_secret,
            csrf_issued_at=row.csrf_issued_at,
            created_at=row.created_at,
            expires_at=row.expires_at,
        )


@dataclass(frozen=True)
class PaymentRecord:
    id: str
    account_id: int
    amount_cents: int
    currency: str
    provider: str
    payee_account: str
    swift_bic: str
    status: PaymentStatus
    is_verified: bool
    verified_by_account_id: Optional[int]
    verified_at: Optional[datetime]
    submitted_to_swift: bool
    submitted_at: Optional[datetime]
    created_at: datetime
    customer_username: Optional[str] = None
    customer_full_name: Optional[str] = None

    @classmethod
    def from_row(cls, row: Payment, owner: Optional[Account] = None) -> "PaymentRecord":
        return cls(
            id=row.id,
            account_id=row.account_id,
            amount_cents=row.amount_cents,
            currency=row.currency,
            provider=row.provider,
            payee_account=row.payee_account,
            swift_bic=row.swift_bic,
            status=LegacyStatusMapper.to_payment_status(row.status),
            is_verified=row.is_verified,
            verified_by_account_id=row.verified_by_account_id,
            verified_at=row.verified_at,
            submitted_to_swift=row.submitted_to_swift,
            submitted_at=row.submitted_at,
            created_at=row.created_at,
            customer_username=owner.username if owner is not None else None,
            customer_full_name=owner.full_name if owner is not None else None,
        )


@dataclass(frozen=True)
class IdempotencyRecord:
    key: str
    account_id: int
    operation_type: str
    entity_id: Optional[str]
    result: Optional[dict]
    created_at: datetime


class CredentialStore:
    """Accounts, sessions, payments and idempotency records"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def run(self, operation: str, work: Callable[[Session], T]) -> T:
        """Run ``work`` atomically with bounded retry on transient failures"""
        return run_in_transaction(self.session_factory, work, operation)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def find_account_by_username_and_account_number(
        self, session: Session, username: str, account_number: str
    ) -> Optional[AccountRecord]:
        row = session.execute(
            select(Account).where(Account.username == username, Account.account_number == account_number)
        ).scalar_one_or_none()
        return AccountRecord.from_row(row) if row is not None else None

    def find_account_by_id(self, session: Session, account_id: int) -> Optional[AccountRecord]:
        row = session.get(Account, account_id)
        return AccountRecord.from_row(row) if row is not None else None

    def insert_account(
        self,
        session: Session,
        *,
        username: str,
        full_name: str,
        national_id: str,
        account_number: str,
        password_hash: str,
        is_staff: bool,
    ) -> AccountRecord:
        """Insert an account; a username collision surfaces as ConflictError"""
        row = Account(
            username=username,
            full_name=full_name,
            national_id=national_id,
            account_number=account_number,
            password_hash=password_hash,
            is_staff=is_staff,
        )
        session.add(row)
        try:
            session.flush()
        except IntegrityError as e:
            logger.info(f"Account insert rejected: username {username!r} already exists")
            raise ConflictError("Username already exists", field_errors={"username": ["Username already exists"]}) from e
        return AccountRecord.from_row(row)

    def has_staff_account(self, session: Session) -> bool:
        return session.execute(select(Account.id).where(Account.is_staff.is_(True)).limit(1)).first() is not None

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def insert_session(
        self, session: Session, token_hash: str, account_id: Optional[int], expires_at: datetime
    ) -> SessionRecord:
        row = PortalSession(token_hash=token_hash, account_id=account_id, expires_at=expires_at)
        session.add(row)
        session.flush()
        return SessionRecord.from_row(row)

    def find_session(self, session: Session, token_hash: str) -> Optional[SessionRecord]:
        row = session.get(PortalSession, token_hash)
        return SessionRecord.from_row(row) if row is not None else None

    def delete_session(self, session: Session, token_hash: str) -> bool:
        result = session.execute(delete(PortalSession).where(PortalSession.token_hash == token_hash))
        return result.rowcount > 0

    def set_csrf_secret(self, session: Session, token_hash: str, secret: str, issued_at: datetime) -> bool:
        result = session.execute(
            update(PortalSession)
            .where(PortalSession.token_hash == token_hash)
            .values(csrf_secret=secret, csrf_issued_at=issued_at)
        )
        return result.rowcount > 0

    def purge_expired_sessions(self, session: Session, now: datetime) -> int:
        result = session.execute(delete(PortalSession).where(PortalSession.expires_at <= now))
        return result.rowcount

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def insert_payment(
        self,
        session: Session,
        *,
        account_id: int,
        amount_cents: int,
        currency: str,
        provider: str,
        payee_account: str,
        swift_bic: str,
        created_at: datetime,
    ) -> PaymentRecord:
        row = Payment(
            account_id=account_id,
            amount_cents=amount_cents,
            currency=currency,
            provider=provider,
            payee_account=payee_account,
            swift_bic=swift_bic,
            status=PaymentStatus.PENDING_VERIFICATION.value,
            is_verified=False,
            submitted_to_swift=False,
            created_at=created_at,
        )
        session.add(row)
        session.flush()
        return PaymentRecord.from_row(row)

    def find_payment_for_update(self, session: Session, payment_id: str) -> Optional[PaymentRecord]:
        """Read one payment, taking a row lock where the backend supports it"""
        row = session.execute(
            select(Payment)
            .where(Payment.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return PaymentRecord.from_row(row) if row is not None else None

    def update_payment_fields(self, session: Session, payment_id: str, expected_submitted: bool = False, **fields) -> bool:
        """
        Atomic per-row update guarded on the submitted flag, so a row that was
        released concurrently is never rewritten.
        """
        if "status" in fields and isinstance(fields["status"], PaymentStatus):
            fields["status"] = fields["status"].value
        result = session.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.submitted_to_swift.is_(expected_submitted))
            .values(**fields)
        )
        return result.rowcount == 1

    def query_payments_by_owner(self, session: Session, account_id: int) -> List[PaymentRecord]:
        rows = session.execute(
            select(Payment)
            .where(Payment.account_id == account_id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
        ).scalars().all()
        return [PaymentRecord.from_row(row) for row in rows]

    def query_payments_by_status(self, session: Session, status: Optional[PaymentStatus]) -> List[PaymentRecord]:
        """Oldest first, joined with the owner; None means every status"""
        query = select(Payment, Account).join(Account, Payment.account_id == Account.id)
        if status is PaymentStatus.PENDING_VERIFICATION:
            query = query.where(or_(
                Payment.status == status.value,
                Payment.status.in_(LEGACY_PENDING_STATUSES),
                Payment.status.is_(None),
            ))
        elif status is not None:
            query = query.where(Payment.status == status.value)
        rows = session.execute(query.order_by(Payment.created_at.asc(), Payment.id.asc())).all()
        return [PaymentRecord.from_row(payment, owner) for payment, owner in rows]

    # ------------------------------------------------------------------
    # Idempotency records
    # ------------------------------------------------------------------

    def find_idempotency_record(self, session: Session, key: str) -> Optional[IdempotencyRecord]:
        row = session.execute(
            select(IdempotencyKey).where(IdempotencyKey.operation_key == key)
        ).scalar_one_or_none()
        if row is None:
            return None
        return IdempotencyRecord(
            key=row.operation_key,
            account_id=row.account_id,
            operation_type=row.operation_type,
            entity_id=row.entity_id,
            result=row.result_data,
            created_at=row.created_at,
        )

    def insert_idempotency_record(
        self, session: Session, key: str, account_id: int, operation_type: str, entity_id: str, result: dict
    ) -> None:
        """Flushes immediately so a duplicate key raises IntegrityError inside the caller's transaction"""
        session.add(IdempotencyKey(
            operation_key=key,
            account_id=account_id,
            operation_type=operation_type,
            entity_id=entity_id,
            result_data=result,
        ))
        session.flush()

    def count_payments(self, session: Session) -> int:
        return session.execute(select(func.count(Payment.id))).scalar_one()

    def normalize_legacy_statuses(self, session: Session, legacy_values: Sequence[Optional[str]]) -> Tuple[int, int]:
        """Rewrite legacy/NULL statuses to PendingVerification; returns (legacy, null) row counts"""
        pending = PaymentStatus.PENDING_VERIFICATION.value
        named = [value for value in legacy_values if value is not None]
        legacy_count = 0
        if named:
            legacy_count = session.execute(
                update(Payment).where(Payment.status.in_(named)).values(status=pending)
            ).rowcount
        null_count = session.execute(
            update(Payment).where(Payment.status.is_(None)).values(status=pending)
        ).rowcount
        return legacy_count, null_count
