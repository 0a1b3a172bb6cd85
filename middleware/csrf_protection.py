"""
CSRF Protection
Double-submit anti-forgery tokens bound to the caller's session.

``issue`` rotates a random secret stored server-side with the session (and
echoed to the browser in an HttpOnly cookie) and derives a public token from
it that client code can read and must send back in a header. A request is
accepted only when the header token was derived from the secret currently
bound to the same session.
"""

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass, field
from typing import Optional

from config import Config
from services.credential_store import CredentialStore, SessionRecord
from utils.datetime_helpers import get_naive_utc_now
from utils.error_handler import CsrfRejected

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CsrfTokenPair:
    """secret: never readable by client code; token: handed to client code"""
    secret: str = field(repr=False)
    token: str


class CSRFProtection:
    """CSRF protection for every state-mutating endpoint"""

    SECRET_BYTES = 32
    NONCE_BYTES = 16
    MAX_TOKEN_LENGTH = 256

    def __init__(self, store: CredentialStore):
        self.store = store

    @staticmethod
    def _sign(secret: str, session_key: str, nonce: str) -> str:
        message = f"{session_key}:{nonce}"
        return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()

    def issue(self, session: SessionRecord) -> CsrfTokenPair:
        """
        Bind a fresh secret to the session and derive its public token.
        Tokens from earlier issues for this session stop validating.
        """
        secret = secrets.token_urlsafe(self.SECRET_BYTES)
        nonce = secrets.token_urlsafe(self.NONCE_BYTES)
        token = f"{nonce}.{self._sign(secret, session.token_hash, nonce)}"
        issued_at = get_naive_utc_now()

        bound = self.store.run(
            "issue_csrf",
            lambda db: self.store.set_csrf_secret(db, session.token_hash, secret, issued_at),
        )
        if not bound:
            logger.error("CSRF issue requested for a session that no longer exists")
            raise CsrfRejected()

        return CsrfTokenPair(secret=secret, token=token)

    def validate(self, session: Optional[SessionRecord], supplied_token: Optional[str],
                 secret_cookie: Optional[str] = None) -> bool:
        """
        True iff ``supplied_token`` was derived from the secret bound to this
        session by its most recent issue. When the HttpOnly secret cookie is
        presented it must match that secret as well.
        """
        try:
            if session is None or not session.csrf_secret:
                return False
            if not isinstance(supplied_token, str) or not supplied_token:
                return False
            if len(supplied_token) > self.MAX_TOKEN_LENGTH or "." not in supplied_token:
                return False

            if secret_cookie is not None and not hmac.compare_digest(
                secret_cookie.encode("utf-8"), session.csrf_secret.encode("utf-8")
            ):
                return False

            nonce, signature = supplied_token.split(".", 1)
            expected_signature = self._sign(session.csrf_secret, session.token_hash, nonce)

            # Constant time comparison
            return hmac.compare_digest(signature.encode("utf-8"), expected_signature.encode("utf-8"))

        except (ValueError, UnicodeError) as e:
            logger.error(f"CSRF token validation error: {e}")
            return False

    def require_valid(self, session: Optional[SessionRecord], supplied_token: Optional[str],
                      secret_cookie: Optional[str] = None, operation: str = "request") -> None:
        """validate() or raise CsrfRejected"""
        if not self.validate(session, supplied_token, secret_cookie):
            logger.warning(f"🛡️ CSRF_REJECTED: {operation}")
            raise CsrfRejected()

    @staticmethod
    def get_csrf_header_name() -> str:
        """Get the name of the CSRF header"""
        return Config.CSRF_HEADER_NAME
