"""
Collaborator Failure Taxonomy.

Adapters for the credential provider, profile store and verification
notifier raise these exceptions.  ``AuthController`` is the only place
they are caught; it converts each into an ``AuthResult`` and the shared
``last_error`` projection.
"""

from __future__ import annotations

from typing import Optional

from sessionkeeper.models.enums import AuthErrorCode


class SessionKeeperError(Exception):
    """Base class carrying a user-facing message and a structured code."""

    default_code: AuthErrorCode = AuthErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        error_code: Optional[AuthErrorCode] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        self.message: str = message
        self.error_code: AuthErrorCode = error_code or self.default_code
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


class CredentialFailure(SessionKeeperError):
    """Bad credentials, network trouble, or a provider-side policy refusal."""


class PersistenceFailure(SessionKeeperError):
    """The profile store was unreachable or rejected the operation."""

    default_code = AuthErrorCode.PERSISTENCE_ERROR


class NotificationFailure(SessionKeeperError):
    """The verification message could not be sent."""

    default_code = AuthErrorCode.NOTIFICATION_ERROR


class SessionRestoreFailure(SessionKeeperError):
    """A stored session marker had no matching active provider session."""

    default_code = AuthErrorCode.SESSION_NOT_FOUND
