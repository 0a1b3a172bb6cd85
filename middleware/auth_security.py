"""
Authentication Security
Credential verification and opaque server-side sessions.

The raw session token only ever lives in the caller's cookie; the store keeps
its SHA-256 digest. Login failures are indistinguishable whether the account
is unknown or the password is wrong.
"""

import hashlib
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from config import Config
from services.authorization_gate import Actor
from services.credential_store import CredentialStore, SessionRecord
from services.password_service import PasswordService
from utils.datetime_helpers import get_naive_utc_now
from utils.error_handler import AuthenticationRequired, InvalidCredentials

logger = logging.getLogger(__name__)


@dataclass
class SessionSecurityConfig:
    """Session security configuration"""

    session_timeout_minutes: int = field(default_factory=lambda: Config.SESSION_TTL_MINUTES)
    anonymous_timeout_minutes: int = field(default_factory=lambda: Config.ANONYMOUS_SESSION_TTL_MINUTES)
    purge_interval_seconds: int = field(default_factory=lambda: Config.SESSION_PURGE_INTERVAL_SECONDS)
    session_regenerate_on_auth: bool = True
    token_bytes: int = 32
    max_token_length: int = 256


@dataclass(frozen=True)
class IssuedSession:
    """A freshly minted session; ``token`` is the only copy of the raw value"""
    token: str = field(repr=False)
    record: SessionRecord
    actor: Optional[Actor] = None


class SessionAuthenticator:
    """login / resolve / logout over server-side sessions"""

    def __init__(self, store: CredentialStore, passwords: PasswordService,
                 config: Optional[SessionSecurityConfig] = None):
        self.store = store
        self.passwords = passwords
        self.config = config or SessionSecurityConfig()
        self._last_purge: Optional[float] = None
        self._purge_lock = threading.Lock()

    @staticmethod
    def hash_token(token: str) -> str:
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    def _well_formed(self, token: Optional[str]) -> bool:
        return isinstance(token, str) and 0 < len(token) <= self.config.max_token_length

    def _purge_due(self) -> bool:
        """At most one opportunistic purge per interval, across threads"""
        with self._purge_lock:
            now = time.monotonic()
            if self._last_purge is not None and now - self._last_purge < self.config.purge_interval_seconds:
                return False
            self._last_purge = now
            return True

    def _mint(self, account_id: Optional[int], replaces: Optional[str] = None) -> IssuedSession:
        token = secrets.token_urlsafe(self.config.token_bytes)
        token_hash = self.hash_token(token)
        now = get_naive_utc_now()
        if account_id is None:
            ttl_minutes = self.config.anonymous_timeout_minutes
        else:
            ttl_minutes = self.config.session_timeout_minutes
        expires_at = now + timedelta(minutes=ttl_minutes)
        purge = self._purge_due()

        def work(session):
            if purge:
                purged = self.store.purge_expired_sessions(session, now)
                if purged:
                    logger.info(f"🧹 Purged {purged} expired session(s)")
            if replaces and self._well_formed(replaces):
                self.store.delete_session(session, self.hash_token(replaces))
            return self.store.insert_session(session, token_hash, account_id, expires_at)

        record = self.store.run("mint_session", work)
        return IssuedSession(token=token, record=record)

    def start_anonymous(self) -> IssuedSession:
        """Pre-login session that only carries an anti-forgery context"""
        issued = self._mint(account_id=None)
        logger.debug("Anonymous session started")
        return issued

    def login(self, username: str, account_number: str, password: str,
              previous_token: Optional[str] = None) -> IssuedSession:
        """
        Verify the username + account number + password triple and mint a new
        session. The previous (usually anonymous) session is destroyed so a
        planted token can never become authenticated.
        """
        account = self.store.run(
            "find_account_for_login",
            lambda session: self.store.find_account_by_username_and_account_number(session, username, account_number),
        )

        if account is None:
            self.passwords.verify_dummy(password)
            logger.warning(f"🔐 LOGIN_FAILED: username={username!r}")
            raise InvalidCredentials()

        if not self.passwords.verify(password, account.password_hash):
            logger.warning(f"🔐 LOGIN_FAILED: username={username!r}")
            raise InvalidCredentials()

        replaces = previous_token if self.config.session_regenerate_on_auth else None
        issued = self._mint(account_id=account.id, replaces=replaces)
        actor = Actor.from_account(account)
        logger.info(f"✅ LOGIN: account {account.id} ({actor.role.value}) signed in")
        return IssuedSession(token=issued.token, record=issued.record, actor=actor)

    def lookup(self, token: Optional[str]) -> Optional[SessionRecord]:
        """Live session for a token (anonymous included); None for anything else"""
        if not self._well_formed(token):
            return None
        record = self.store.run(
            "find_session", lambda session: self.store.find_session(session, self.hash_token(token))
        )
        if record is None or record.expires_at <= get_naive_utc_now():
            return None
        return record

    def resolve_optional(self, token: Optional[str]) -> Optional[Actor]:
        return self.actor_for_session(self.lookup(token))

    def actor_for_session(self, record: Optional[SessionRecord]) -> Optional[Actor]:
        """Actor owning an already looked-up session; anonymous sessions have none"""
        if record is None or record.is_anonymous:
            return None
        account = self.store.run(
            "find_account_by_id", lambda session: self.store.find_account_by_id(session, record.account_id)
        )
        if account is None:
            return None
        return Actor.from_account(account)

    def resolve(self, token: Optional[str]) -> Actor:
        """Account behind a session token; fails closed"""
        actor = self.resolve_optional(token)
        if actor is None:
            raise AuthenticationRequired()
        return actor

    def logout(self, token: Optional[str]) -> None:
        """Destroy the session; logging out twice is not an error"""
        if not self._well_formed(token):
            return
        removed = self.store.run(
            "delete_session", lambda session: self.store.delete_session(session, self.hash_token(token))
        )
        if removed:
            logger.info("👋 LOGOUT: session destroyed")

    def purge_expired(self) -> int:
        now = get_naive_utc_now()
        purged = self.store.run("purge_expired_sessions", lambda session: self.store.purge_expired_sessions(session, now))
        if purged:
            logger.info(f"🧹 Purged {purged} expired session(s)")
        return purged
