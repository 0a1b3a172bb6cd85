"""
Bank Payments Portal - Database Schema
======================================

Schema for the portal's core use cases:
- Customer self-registration and staff accounts created by staff
- Server-side sessions with a bound anti-forgery secret
- Cross-border payment requests verified and released by staff
- Durable idempotency records for payment creation

Money is stored as integer minor units only.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional
from sqlalchemy import (
    BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, String,
    CheckConstraint, JSON,
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column

from utils.datetime_helpers import get_naive_utc_now


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# ============================================================================
# ENUMS - Business Logic Constants
# ============================================================================

class PaymentStatus(Enum):
    """Payment lifecycle states"""
    PENDING_VERIFICATION = "PendingVerification"
    VERIFIED = "Verified"
    SUBMITTED_TO_SWIFT = "SubmittedToSwift"


# Status values written by older releases; read as PENDING_VERIFICATION
LEGACY_PENDING_STATUSES = ("Pending", "pending")


# ============================================================================
# TABLES
# ============================================================================

class Account(Base):
    """Customer or staff identity"""
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String(60), nullable=False)
    national_id: Mapped[str] = mapped_column(String(20), nullable=False)
    account_number: Mapped[str] = mapped_column(String(20), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Set at creation only; no self-service path mutates it
    is_staff: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=get_naive_utc_now, nullable=False)

    payments: Mapped[list["Payment"]] = relationship(
        "Payment", foreign_keys="Payment.account_id", back_populates="owner"
    )

    __table_args__ = (
        Index("ix_accounts_username_account_number", "username", "account_number"),
    )

    def __repr__(self):
        return f"<Account(id={self.id}, username={self.username}, is_staff={self.is_staff})>"


class PortalSession(Base):
    """Server-side session; account_id is NULL for anonymous pre-login sessions"""
    __tablename__ = "portal_sessions"

    # SHA-256 of the opaque cookie value; the raw token is never stored
    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    account_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("accounts.id"), nullable=True, index=True)

    # Anti-forgery secret bound to this session; rotated on every issue
    csrf_secret: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    csrf_issued_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=get_naive_utc_now, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    account: Mapped[Optional["Account"]] = relationship("Account")

    __table_args__ = (
        Index("ix_portal_sessions_expires", "expires_at"),
    )

    def __repr__(self):
        return f"<PortalSession(account_id={self.account_id}, expires_at={self.expires_at})>"


class Payment(Base):
    """Cross-border payment request"""
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id: Mapped[int] = mapped_column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)

    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    provider: Mapped[str] = mapped_column(String(10), default="SWIFT", nullable=False)
    payee_account: Mapped[str] = mapped_column(String(20), nullable=False)
    swift_bic: Mapped[str] = mapped_column(String(11), nullable=False)

    # Nullable only for rows written before status normalization
    status: Mapped[Optional[str]] = mapped_column(
        String(30), default=PaymentStatus.PENDING_VERIFICATION.value, nullable=True, index=True
    )

    # Staff verification
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verified_by_account_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("accounts.id"), nullable=True)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)

    # Release
    submitted_to_swift: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=get_naive_utc_now, nullable=False)

    owner: Mapped["Account"] = relationship("Account", foreign_keys=[account_id], back_populates="payments")
    verified_by: Mapped[Optional["Account"]] = relationship("Account", foreign_keys=[verified_by_account_id])

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        CheckConstraint("NOT submitted_to_swift OR is_verified", name="ck_payments_submitted_requires_verified"),
        Index("ix_payments_status_created", "status", "created_at"),
        Index("ix_payments_owner_created", "account_id", "created_at"),
    )

    def __repr__(self):
        return f"<Payment(id={self.id}, status={self.status}, amount_cents={self.amount_cents})>"


class IdempotencyKey(Base):
    """Maps a caller-supplied key to the payment creation result it produced"""
    __tablename__ = "idempotency_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    operation_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    account_id: Mapped[int] = mapped_column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    operation_type: Mapped[str] = mapped_column(String(50), nullable=False)  # 'payment_create'
    entity_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Operation result for replay
    result_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=get_naive_utc_now, nullable=False)

    def __repr__(self):
        return f"<IdempotencyKey(operation_key={self.operation_key}, operation_type={self.operation_type})>"
