"""
Password hashing primitive
Salted, slow hashing via passlib; digests are never logged or returned
"""

import logging
from typing import Optional

from passlib.context import CryptContext

from config import Config

logger = logging.getLogger(__name__)


class PasswordService:
    """hash(password) -> digest, verify(password, digest) -> bool"""

    def __init__(self, scheme: Optional[str] = None):
        self.pwd_context = CryptContext(schemes=[scheme or Config.PASSWORD_HASH_SCHEME], deprecated="auto")
        # Verified against when the account is unknown, so both login failure
        # paths spend the same hashing time
        self._dummy_digest = self.pwd_context.hash("portal-dummy-password")

    def hash(self, password: str) -> str:
        return self.pwd_context.hash(password)

    def verify(self, password: str, digest: Optional[str]) -> bool:
        if not digest:
            self.pwd_context.verify(password or "", self._dummy_digest)
            return False
        try:
            return self.pwd_context.verify(password or "", digest)
        except (ValueError, TypeError):
            # Malformed or unknown digest format
            logger.warning("Stored password digest could not be parsed")
            return False

    def verify_dummy(self, password: str) -> bool:
        """Burn one verification for an unknown account; always False"""
        self.pwd_context.verify(password or "", self._dummy_digest)
        return False
