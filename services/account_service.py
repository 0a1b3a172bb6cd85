"""
Account Service
Customer self-registration, staff-created staff accounts and the startup
seeding of the first staff members.
"""

import logging
from typing import Any, List, Mapping, Optional

from config import Config
from services.authorization_gate import Actor, AuthorizationGate, Operation
from services.credential_store import AccountRecord, CredentialStore
from services.password_service import PasswordService
from utils.input_validation import InputValidator, RegistrationInput

logger = logging.getLogger(__name__)


class AccountService:
    """Creates accounts; the staff flag is fixed here and never changes afterwards"""

    def __init__(self, store: CredentialStore, passwords: PasswordService, gate: AuthorizationGate):
        self.store = store
        self.passwords = passwords
        self.gate = gate

    def _insert(self, data: RegistrationInput, is_staff: bool) -> AccountRecord:
        password_hash = self.passwords.hash(data.password)
        return self.store.run(
            "insert_account",
            lambda session: self.store.insert_account(
                session,
                username=data.username,
                full_name=data.full_name,
                national_id=data.national_id,
                account_number=data.account_number,
                password_hash=password_hash,
                is_staff=is_staff,
            ),
        )

    def register_customer(self, actor: Optional[Actor], form: Mapping[str, Any]) -> AccountRecord:
        """Anonymous self-registration; always creates a customer"""
        self.gate.authorize(actor, Operation.REGISTER)
        data = InputValidator.validate_registration(form)
        account = self._insert(data, is_staff=False)
        logger.info(f"🆕 ACCOUNT_REGISTERED: customer {account.id} ({account.username})")
        return account

    def create_staff_account(self, actor: Optional[Actor], form: Mapping[str, Any]) -> AccountRecord:
        """Only an existing staff member can create another"""
        actor = self.gate.require(actor, Operation.CREATE_STAFF_ACCOUNT)
        data = InputValidator.validate_registration(form)
        account = self._insert(data, is_staff=True)
        logger.info(f"🆕 STAFF_CREATED: staff {account.id} ({account.username}) by staff {actor.account_id}")
        return account

    def seed_staff_accounts(self, password: Optional[str] = None) -> List[AccountRecord]:
        """
        Create the configured bootstrap staff when the store has no staff at
        all. Returns the accounts created (empty when staff already exist).
        """
        if self.store.run("has_staff_account", self.store.has_staff_account):
            return []

        digest = self.passwords.hash(password or Config.SEED_STAFF_PASSWORD)

        def work(session) -> List[AccountRecord]:
            if self.store.has_staff_account(session):
                return []
            return [
                self.store.insert_account(
                    session,
                    username=seed["username"],
                    full_name=seed["full_name"],
                    national_id=seed["national_id"],
                    account_number=seed["account_number"],
                    password_hash=digest,
                    is_staff=True,
                )
                for seed in Config.SEED_STAFF
            ]

        created = self.store.run("seed_staff_accounts", work)
        for account in created:
            logger.info(f"🌱 Seeded staff account {account.username}")
        return created
