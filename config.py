"""Configuration management for the Bank Payments Portal"""

import os
import logging
from typing import Dict, Any, Tuple

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {raw!r}, using default {default}")
        return default


class Config:
    """Application configuration"""

    # Environment detection: ENVIRONMENT is the only switch
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower().strip() or "development"
    IS_PRODUCTION = ENVIRONMENT == "production"
    CURRENT_ENVIRONMENT = "production" if IS_PRODUCTION else "development"

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///bankportal.db")
    DATABASE_ECHO = _env_bool("DATABASE_ECHO", False)

    # Store retry policy (transient failures only)
    STORE_MAX_RETRIES = _env_int("STORE_MAX_RETRIES", 5)
    STORE_RETRY_BACKOFF_SECONDS = float(os.getenv("STORE_RETRY_BACKOFF_SECONDS", "0.05"))

    # Sessions
    SESSION_TTL_MINUTES = _env_int("SESSION_TTL_MINUTES", 480)  # 8 hours
    ANONYMOUS_SESSION_TTL_MINUTES = _env_int("ANONYMOUS_SESSION_TTL_MINUTES", 30)
    SESSION_PURGE_INTERVAL_SECONDS = _env_int("SESSION_PURGE_INTERVAL_SECONDS", 300)
    SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "portal_session")

    # CSRF double-submit transport
    CSRF_SECRET_COOKIE_NAME = os.getenv("CSRF_SECRET_COOKIE_NAME", "portal_csrf_secret")
    CSRF_TOKEN_COOKIE_NAME = os.getenv("CSRF_TOKEN_COOKIE_NAME", "XSRF-TOKEN")
    CSRF_HEADER_NAME = os.getenv("CSRF_HEADER_NAME", "X-CSRF-Token")

    # Cookies
    COOKIE_SECURE = _env_bool("COOKIE_SECURE", IS_PRODUCTION)
    COOKIE_SAMESITE = os.getenv("COOKIE_SAMESITE", "lax").lower()

    # Password hashing
    PASSWORD_HASH_SCHEME = os.getenv("PASSWORD_HASH_SCHEME", "pbkdf2_sha256")

    # Payments
    ALLOWED_CURRENCIES: Tuple[str, ...] = ("ZAR", "USD", "EUR", "GBP", "AUD", "CAD", "JPY", "CNY")
    PAYMENT_PROVIDER = "SWIFT"

    # Staff bootstrap: staff can never self-register, so the first ones are seeded
    SEED_STAFF_ACCOUNTS = _env_bool("SEED_STAFF_ACCOUNTS", True)
    DEFAULT_SEED_STAFF_PASSWORD = "Emp@12345"
    SEED_STAFF_PASSWORD = os.getenv("SEED_STAFF_PASSWORD", DEFAULT_SEED_STAFF_PASSWORD)
    SEED_STAFF: Tuple[Dict[str, str], ...] = (
        {
            "full_name": "Admin Employee",
            "national_id": "EMP001",
            "account_number": "90000001",
            "username": "employee1",
        },
        {
            "full_name": "Second Employee",
            "national_id": "EMP002",
            "account_number": "90000002",
            "username": "employee2",
        },
    )

    # Rate limiting buckets: max requests per window
    RATE_LIMITING_ENABLED = _env_bool("RATE_LIMITING_ENABLED", True)
    RATE_LIMITS: Dict[str, Dict[str, int]] = {
        "auth": {"max_requests": _env_int("RATE_LIMIT_AUTH", 10), "window_seconds": 60},
        "payment": {"max_requests": _env_int("RATE_LIMIT_PAYMENT", 30), "window_seconds": 60},
        "general": {"max_requests": _env_int("RATE_LIMIT_GENERAL", 60), "window_seconds": 60},
    }

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    @staticmethod
    def log_environment_config():
        """Log current environment configuration for debugging"""
        logger.info("🔧 Portal Environment Configuration:")
        logger.info(f"   Environment: {Config.CURRENT_ENVIRONMENT.upper()}")
        logger.info(f"   Is Production: {Config.IS_PRODUCTION}")
        logger.info(f"   Database: {Config.DATABASE_URL.split('://', 1)[0]}")
        logger.info(f"   Session TTL: {Config.SESSION_TTL_MINUTES} minutes")
        logger.info(f"   Anonymous session TTL: {Config.ANONYMOUS_SESSION_TTL_MINUTES} minutes")
        logger.info(f"   Secure cookies: {Config.COOKIE_SECURE}")
        logger.info(f"   Rate limiting: {'enabled' if Config.RATE_LIMITING_ENABLED else 'disabled'}")

    @classmethod
    def validate(cls) -> Dict[str, Any]:
        """Check for insecure settings; returns a summary of the findings"""
        warnings = []

        if cls.IS_PRODUCTION and not cls.COOKIE_SECURE:
            warnings.append("COOKIE_SECURE is disabled in production")
        if cls.IS_PRODUCTION and cls.SEED_STAFF_ACCOUNTS and cls.SEED_STAFF_PASSWORD == cls.DEFAULT_SEED_STAFF_PASSWORD:
            warnings.append("Seed staff accounts use the default password in production")
        if cls.COOKIE_SAMESITE not in ("lax", "strict"):
            warnings.append(f"COOKIE_SAMESITE={cls.COOKIE_SAMESITE!r} weakens CSRF protection")
        if cls.IS_PRODUCTION and cls.DATABASE_URL.startswith("sqlite"):
            warnings.append("SQLite store in production: idempotency is only safe on a single instance")

        for warning in warnings:
            logger.warning(f"⚠️ CONFIG: {warning}")

        return {"valid": not warnings, "warnings": warnings}

    @classmethod
    def get_rate_limit(cls, bucket: str) -> Dict[str, int]:
        """Get rate limit configuration for a bucket"""
        return cls.RATE_LIMITS.get(bucket, cls.RATE_LIMITS["general"])
