"""
Shared fixtures and in-memory collaborators.

The fakes implement the collaborator protocols from
``sessionkeeper.interfaces`` so controller and bridge tests never touch
Supabase or SQLite.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import pytest

from sessionkeeper.database import DatabaseManager
from sessionkeeper.exceptions import (
    CredentialFailure,
    NotificationFailure,
    PersistenceFailure,
)
from sessionkeeper.interfaces import SessionListener, Unsubscribe
from sessionkeeper.logger import StructuredLogger
from sessionkeeper.models.enums import AuthErrorCode
from sessionkeeper.models.profile import ProviderIdentity, UserProfile
from sessionkeeper.schema import initialize_schema
from sessionkeeper.services.auth_controller import AuthController
from sessionkeeper.services.state_observer import StateObserverBridge

# --- Mock Implementations ---


class FakeCredentialProvider:
    """In-memory credential provider.

    ``current`` is the ambient provider session; set it directly to
    simulate a session that survived a restart.  Like Supabase with email
    confirmation enabled, ``create`` registers the account without
    opening a session.
    """

    def __init__(self) -> None:
        self.accounts: dict[str, tuple[ProviderIdentity, str]] = {}
        self.current: Optional[ProviderIdentity] = None
        self.listeners: list[SessionListener] = []
        self.create_error: Optional[CredentialFailure] = None
        self.authenticate_error: Optional[CredentialFailure] = None
        self.deauthenticate_error: Optional[CredentialFailure] = None
        self.reset_error: Optional[CredentialFailure] = None
        self.subscribe_error: Optional[CredentialFailure] = None
        self.next_id: str = "u1"
        self.authenticate_calls: int = 0
        self.reset_requests: list[str] = []

    def add_account(
        self, email: str, password: str, user_id: str, verified: bool = False,
    ) -> ProviderIdentity:
        identity = ProviderIdentity(id=user_id, email=email, email_verified=verified)
        self.accounts[email] = (identity, password)
        return identity

    async def create(
        self, email: str, password: str, display_name: Optional[str] = None,
    ) -> ProviderIdentity:
        if self.create_error is not None:
            raise self.create_error
        return self.add_account(email, password, self.next_id)

    async def authenticate(self, email: str, password: str) -> ProviderIdentity:
        self.authenticate_calls += 1
        if self.authenticate_error is not None:
            raise self.authenticate_error
        account = self.accounts.get(email)
        if account is None or account[1] != password:
            raise CredentialFailure(
                "Incorrect email or password.",
                error_code=AuthErrorCode.INVALID_CREDENTIALS,
            )
        self.current = account[0]
        return account[0]

    async def deauthenticate(self) -> None:
        if self.deauthenticate_error is not None:
            raise self.deauthenticate_error
        self.current = None

    async def send_password_reset(self, email: str) -> None:
        if self.reset_error is not None:
            raise self.reset_error
        self.reset_requests.append(email)

    async def current_identity(self) -> Optional[ProviderIdentity]:
        return self.current

    async def subscribe(self, listener: SessionListener) -> Unsubscribe:
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.listeners.append(listener)
        listener(self.current)

        def _unsubscribe() -> None:
            if listener in self.listeners:
                self.listeners.remove(listener)

        return _unsubscribe

    def emit(self, identity: Optional[ProviderIdentity]) -> None:
        for listener in list(self.listeners):
            listener(identity)


class FakeNotifier:
    """Counts verification sends."""

    def __init__(self) -> None:
        self.sends: int = 0
        self.error: Optional[NotificationFailure] = None

    async def send(self) -> None:
        self.sends += 1
        if self.error is not None:
            raise self.error


class FakeProfileStore:
    """In-memory profile store that counts durable writes."""

    def __init__(self) -> None:
        self.records: dict[str, UserProfile] = {}
        self.save_calls: int = 0
        self.update_calls: int = 0
        self.fetch_calls: int = 0
        self.save_error: Optional[PersistenceFailure] = None
        self.fetch_error: Optional[PersistenceFailure] = None
        self.query_error: Optional[PersistenceFailure] = None

    def add(self, profile: UserProfile) -> None:
        self.records[profile.id] = profile

    async def save(self, profile: UserProfile) -> None:
        self.save_calls += 1
        if self.save_error is not None:
            raise self.save_error
        self.records[profile.id] = profile

    async def fetch(self, user_id: str) -> UserProfile:
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        profile = self.records.get(user_id)
        if profile is None:
            raise PersistenceFailure(
                "No profile exists for this account.",
                error_code=AuthErrorCode.PROFILE_NOT_FOUND,
            )
        return profile

    async def update_verification(self, user_id: str, verified: bool) -> None:
        self.update_calls += 1
        profile = self.records[user_id]
        self.records[user_id] = profile.model_copy(update={"verified": verified})

    async def query_by_verification(self, verified: bool) -> list[UserProfile]:
        if self.query_error is not None:
            raise self.query_error
        return [p for p in self.records.values() if p.verified == verified]

    async def search(self, text: str) -> list[UserProfile]:
        if self.query_error is not None:
            raise self.query_error
        needle = text.lower()
        return [
            p for p in self.records.values()
            if needle in p.display_name.lower() or needle in p.email.lower()
        ]

    async def fetch_all(self) -> list[UserProfile]:
        if self.query_error is not None:
            raise self.query_error
        return list(self.records.values())


class InMemorySessionStore:
    """Dict-backed ``SessionStore``."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> bool:
        self.values[key] = value
        return True

    def remove(self, key: str) -> bool:
        self.values.pop(key, None)
        return True


# --- Fixtures ---


@pytest.fixture
def logger(tmp_path: Path, request: pytest.FixtureRequest) -> StructuredLogger:
    return StructuredLogger(
        name=f"sessionkeeper.tests.{request.node.name}",
        log_file=str(tmp_path / "sessionkeeper.log"),
    )


@pytest.fixture
def provider() -> FakeCredentialProvider:
    return FakeCredentialProvider()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def profiles() -> FakeProfileStore:
    return FakeProfileStore()


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def controller(
    provider: FakeCredentialProvider,
    notifier: FakeNotifier,
    profiles: FakeProfileStore,
    session_store: InMemorySessionStore,
    logger: StructuredLogger,
) -> AuthController:
    return AuthController(
        credentials=provider,
        notifier=notifier,
        profiles=profiles,
        session_store=session_store,
        logger=logger,
    )


@pytest.fixture
def bridge(
    controller: AuthController,
    provider: FakeCredentialProvider,
    session_store: InMemorySessionStore,
    logger: StructuredLogger,
) -> StateObserverBridge:
    return StateObserverBridge(
        controller=controller,
        credentials=provider,
        session_store=session_store,
        logger=logger,
    )


@pytest.fixture
def offline_db(tmp_path: Path, logger: StructuredLogger):
    """SQLite-only ``DatabaseManager`` with the schema applied."""
    db = DatabaseManager(sqlite_path=tmp_path / "local.db", logger=logger)
    initialize_schema(db.sqlite, logger)
    yield db
    db.close()
