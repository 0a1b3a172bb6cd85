"""
Service wiring for the portal: one explicitly constructed set of services per
application, with the store handle passed in rather than held globally.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from middleware.auth_security import SessionAuthenticator, SessionSecurityConfig
from middleware.csrf_protection import CSRFProtection
from middleware.rate_limiter import RateLimiter
from middleware.security_middleware import SecurityMiddleware
from services.account_service import AccountService
from services.authorization_gate import AuthorizationGate
from services.credential_store import CredentialStore
from services.idempotency_service import IdempotencyService
from services.password_service import PasswordService
from services.payment_lifecycle import PaymentLifecycleEngine

logger = logging.getLogger(__name__)


@dataclass
class PortalServices:
    store: CredentialStore
    passwords: PasswordService
    gate: AuthorizationGate
    authenticator: SessionAuthenticator
    csrf: CSRFProtection
    accounts: AccountService
    payments: PaymentLifecycleEngine
    rate_limiter: RateLimiter
    security: SecurityMiddleware


def build_services(session_factory: sessionmaker,
                   session_config: Optional[SessionSecurityConfig] = None,
                   password_scheme: Optional[str] = None) -> PortalServices:
    store = CredentialStore(session_factory)
    passwords = PasswordService(password_scheme)
    gate = AuthorizationGate()
    services = PortalServices(
        store=store,
        passwords=passwords,
        gate=gate,
        authenticator=SessionAuthenticator(store, passwords, session_config),
        csrf=CSRFProtection(store),
        accounts=AccountService(store, passwords, gate),
        payments=PaymentLifecycleEngine(store, gate, IdempotencyService(store)),
        rate_limiter=RateLimiter(),
        security=SecurityMiddleware(),
    )
    logger.debug("Portal services constructed")
    return services
