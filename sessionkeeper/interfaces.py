"""
Collaborator Contracts.

Structural protocols for the four collaborators ``AuthController`` and
``StateObserverBridge`` consume.  Production implementations live in
``sessionkeeper.services`` and ``sessionkeeper.repositories``; tests
supply in-memory fakes.

Async operations signal failure by raising the matching exception from
``sessionkeeper.exceptions``.
"""

from __future__ import annotations

from typing import Callable, Optional, Protocol, runtime_checkable

from sessionkeeper.models.profile import ProviderIdentity, UserProfile

SessionListener = Callable[[Optional[ProviderIdentity]], None]
"""Receives the provider's current identity, or ``None`` when signed out."""

Unsubscribe = Callable[[], None]


@runtime_checkable
class CredentialProvider(Protocol):
    """Authenticates and deauthenticates; raises ``CredentialFailure``."""

    async def create(
        self, email: str, password: str, display_name: Optional[str] = None,
    ) -> ProviderIdentity: ...  # noqa: E704

    async def authenticate(self, email: str, password: str) -> ProviderIdentity: ...  # noqa: E704

    async def deauthenticate(self) -> None: ...  # noqa: E704

    async def send_password_reset(self, email: str) -> None: ...  # noqa: E704

    async def current_identity(self) -> Optional[ProviderIdentity]:
        """Return the active account with a fresh verification flag."""
        ...

    async def subscribe(self, listener: SessionListener) -> Unsubscribe:
        """Register *listener* for session changes.

        The listener fires once with the current value at subscription
        time and again on every later change.
        """
        ...


@runtime_checkable
class VerificationNotifier(Protocol):
    """Sends a verification message; raises ``NotificationFailure``."""

    async def send(self) -> None: ...  # noqa: E704


@runtime_checkable
class ProfileStore(Protocol):
    """Durable profile records; raises ``PersistenceFailure``."""

    async def save(self, profile: UserProfile) -> None: ...  # noqa: E704

    async def fetch(self, user_id: str) -> UserProfile: ...  # noqa: E704

    async def update_verification(self, user_id: str, verified: bool) -> None: ...  # noqa: E704

    async def query_by_verification(self, verified: bool) -> list[UserProfile]: ...  # noqa: E704

    async def search(self, text: str) -> list[UserProfile]: ...  # noqa: E704

    async def fetch_all(self) -> list[UserProfile]: ...  # noqa: E704


@runtime_checkable
class SessionStore(Protocol):
    """Single-slot key-value persistence for the session marker."""

    def get(self, key: str) -> Optional[str]: ...  # noqa: E704

    def set(self, key: str, value: str) -> bool: ...  # noqa: E704

    def remove(self, key: str) -> bool: ...  # noqa: E704
