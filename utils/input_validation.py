"""
Input Validation Utilities
Field-level validation for registration, login and payment requests
"""

import re
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from config import Config
from models import PaymentStatus
from utils.decimal_precision import MonetaryDecimal
from utils.error_handler import ValidationError

logger = logging.getLogger(__name__)

STATUS_FILTER_ALL = "All"


@dataclass(frozen=True)
class RegistrationInput:
    full_name: str
    national_id: str
    account_number: str
    username: str
    password: str


@dataclass(frozen=True)
class LoginInput:
    username: str
    account_number: str
    password: str


@dataclass(frozen=True)
class PaymentInput:
    amount_cents: int
    currency: str
    provider: str
    payee_account: str
    swift_bic: str
    idempotency_key: str


class FieldErrors:
    """Collects messages per field and raises them together"""

    def __init__(self):
        self._errors: Dict[str, List[str]] = {}

    def add(self, field: str, message: str) -> None:
        self._errors.setdefault(field, []).append(message)

    def __bool__(self) -> bool:
        return bool(self._errors)

    def raise_if_any(self, message: str = "Invalid input") -> None:
        if self._errors:
            raise ValidationError(message, field_errors=dict(self._errors))


class InputValidator:
    """Comprehensive input validation"""

    FULL_NAME_PATTERN = re.compile(r"^(?:[^\W\d_]|[ ,.'-]){2,60}$")
    NATIONAL_ID_PATTERN = re.compile(r"^[0-9A-Za-z-]{6,20}$")
    ACCOUNT_NUMBER_PATTERN = re.compile(r"^[0-9]{8,20}$")
    USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]{3,30}$")
    AMOUNT_PATTERN = re.compile(r"^[0-9]{1,10}(?:\.[0-9]{1,2})?$")
    PAYEE_ACCOUNT_PATTERN = re.compile(r"^[0-9]{8,20}$")
    # ISO 9362: 4 bank + 2 country letters, 2 location alphanumerics, optional 3 branch
    SWIFT_BIC_PATTERN = re.compile(r"^[A-Z]{6}[A-Z0-9]{2}(?:[A-Z0-9]{3})?$")
    IDEMPOTENCY_KEY_MAX_LENGTH = 64
    IDEMPOTENCY_KEY_PATTERN = re.compile(r"^[\x21-\x7e]{1,64}$")

    PASSWORD_MIN_LENGTH = 8
    PASSWORD_MAX_LENGTH = 64

    @staticmethod
    def _text(data: Mapping[str, Any], field: str) -> str:
        value = data.get(field)
        if value is None:
            return ""
        return str(value)

    @classmethod
    def _check(cls, errors: FieldErrors, field: str, value: str, pattern: re.Pattern, message: str,
               required_message: str) -> None:
        if not value:
            errors.add(field, required_message)
        elif not pattern.fullmatch(value):
            errors.add(field, message)

    @classmethod
    def _check_password(cls, errors: FieldErrors, password: str) -> None:
        if not password:
            errors.add("password", "Password is required")
        elif not cls.PASSWORD_MIN_LENGTH <= len(password) <= cls.PASSWORD_MAX_LENGTH:
            errors.add("password", "Password must be 8–64 characters")

    @classmethod
    def validate_registration(cls, data: Mapping[str, Any]) -> RegistrationInput:
        """Validate a registration form; raises ValidationError keyed by field"""
        errors = FieldErrors()
        full_name = cls._text(data, "fullName").strip()
        national_id = cls._text(data, "idNumber").strip()
        account_number = cls._text(data, "accountNumber").strip()
        username = cls._text(data, "username").strip()
        password = cls._text(data, "password")

        cls._check(errors, "fullName", full_name, cls.FULL_NAME_PATTERN,
                   "2–60 letters; may include spaces and , . ' -", "Full name is required")
        cls._check(errors, "idNumber", national_id, cls.NATIONAL_ID_PATTERN,
                   "6–20 characters; letters/digits/hyphen only", "ID number is required")
        cls._check(errors, "accountNumber", account_number, cls.ACCOUNT_NUMBER_PATTERN,
                   "Digits only, 8–20 long", "Account number is required")
        cls._check(errors, "username", username, cls.USERNAME_PATTERN,
                   "3–30; letters/digits/_ . -", "Username is required")
        cls._check_password(errors, password)
        errors.raise_if_any()

        return RegistrationInput(
            full_name=full_name,
            national_id=national_id,
            account_number=account_number,
            username=username,
            password=password,
        )

    @classmethod
    def validate_login(cls, data: Mapping[str, Any]) -> LoginInput:
        """Validate login fields; format errors never reveal whether an account exists"""
        errors = FieldErrors()
        username = cls._text(data, "username").strip()
        account_number = cls._text(data, "accountNumber").strip()
        password = cls._text(data, "password")

        cls._check(errors, "username", username, cls.USERNAME_PATTERN,
                   "3–30; letters/digits/_ . -", "Username is required")
        cls._check(errors, "accountNumber", account_number, cls.ACCOUNT_NUMBER_PATTERN,
                   "Digits only, 8–20 long", "Account number is required")
        cls._check_password(errors, password)
        errors.raise_if_any()

        return LoginInput(username=username, account_number=account_number, password=password)

    @classmethod
    def validate_amount(cls, raw_amount: Any) -> int:
        """Decimal string with at most 2 places, converted to positive minor units"""
        amount = "" if raw_amount is None else str(raw_amount).strip()
        if not amount:
            raise ValidationError("Invalid amount", field_errors={"amount": ["Amount is required"]})
        if not cls.AMOUNT_PATTERN.fullmatch(amount):
            raise ValidationError(
                "Invalid amount",
                field_errors={"amount": ["Up to 10 digits with at most 2 decimal places"]},
            )
        minor_units = MonetaryDecimal.to_minor_units(amount)
        if minor_units <= 0:
            raise ValidationError("Invalid amount", field_errors={"amount": ["Amount must be greater than zero"]})
        return minor_units

    @classmethod
    def validate_idempotency_key(cls, raw_key: Any) -> str:
        """Mandatory opaque key; UUID-shaped keys are returned in canonical lowercase form"""
        key = "" if raw_key is None else str(raw_key).strip()
        if not key:
            raise ValidationError("Idempotency required", field_errors={"idempotencyKey": ["Idempotency key is required"]})
        if not cls.IDEMPOTENCY_KEY_PATTERN.fullmatch(key):
            raise ValidationError(
                "Idempotency required",
                field_errors={"idempotencyKey": [f"Up to {cls.IDEMPOTENCY_KEY_MAX_LENGTH} printable characters without spaces"]},
            )
        try:
            parsed = uuid.UUID(key)
        except ValueError:
            return key
        if parsed.int == 0:
            raise ValidationError("Idempotency required", field_errors={"idempotencyKey": ["Must not be the empty UUID"]})
        return str(parsed)

    @classmethod
    def validate_payment(cls, data: Mapping[str, Any]) -> PaymentInput:
        """Validate a payment request; the idempotency key is checked first"""
        idempotency_key = cls.validate_idempotency_key(data.get("idempotencyKey"))

        errors = FieldErrors()
        amount_cents = 0
        try:
            amount_cents = cls.validate_amount(data.get("amount"))
        except ValidationError as e:
            for message in e.field_errors.get("amount", []):
                errors.add("amount", message)

        currency = cls._text(data, "currency").strip()
        if currency not in Config.ALLOWED_CURRENCIES:
            errors.add("currency", f"Must be one of {', '.join(Config.ALLOWED_CURRENCIES)}")

        provider = cls._text(data, "provider").strip() or Config.PAYMENT_PROVIDER
        if provider != Config.PAYMENT_PROVIDER:
            errors.add("provider", f"Only {Config.PAYMENT_PROVIDER} is supported")

        payee_account = cls._text(data, "payeeAccount").strip()
        cls._check(errors, "payeeAccount", payee_account, cls.PAYEE_ACCOUNT_PATTERN,
                   "Digits only, 8–20 long", "Payee account is required")

        swift_bic = cls._text(data, "swiftBic").strip()
        cls._check(errors, "swiftBic", swift_bic, cls.SWIFT_BIC_PATTERN,
                   "8 or 11 characters: 6 letters then alphanumerics", "SWIFT code is required")

        errors.raise_if_any()

        return PaymentInput(
            amount_cents=amount_cents,
            currency=currency,
            provider=provider,
            payee_account=payee_account,
            swift_bic=swift_bic,
            idempotency_key=idempotency_key,
        )

    @classmethod
    def validate_status_filter(cls, raw_status: Optional[str]) -> Optional[PaymentStatus]:
        """One of the three statuses or "All" (returned as None); anything else is rejected"""
        status = (raw_status or "").strip()
        if status == STATUS_FILTER_ALL:
            return None
        for candidate in PaymentStatus:
            if candidate.value == status:
                return candidate
        allowed = [s.value for s in PaymentStatus] + [STATUS_FILTER_ALL]
        raise ValidationError(
            "Invalid status filter",
            field_errors={"status": [f"Must be one of {', '.join(allowed)}"]},
        )
