"""
Shared Enumerations for SessionKeeper Models.

All string enumerations for type-safe field constraints.  StrEnum values
compare equal to their string equivalents.
"""

from __future__ import annotations
from enum import StrEnum


class AuthPhase(StrEnum):
    """Phases of the session state machine.

    ``SIGNED_OUT`` and ``AUTHENTICATED`` are the resting phases.  The
    others are transitional and always resolve within one collaborator
    round trip.  ``RESTORING`` only occurs while a startup restoration
    is being applied.
    """

    SIGNED_OUT = "SIGNED_OUT"
    AUTHENTICATING = "AUTHENTICATING"
    REGISTERING = "REGISTERING"
    RESTORING = "RESTORING"
    AUTHENTICATED = "AUTHENTICATED"


class Outcome(StrEnum):
    """How a single controller operation resolved."""

    COMPLETED = "COMPLETED"
    PARTIAL = "PARTIAL"  # first step succeeded, a chained step failed
    FAILED = "FAILED"
    UNCHANGED = "UNCHANGED"  # nothing to do, no collaborator write issued
    PRECONDITION_NOT_MET = "PRECONDITION_NOT_MET"


class AuthErrorCode(StrEnum):
    """Exhaustive enumeration of failure categories.

    Credential-provider codes come first, followed by the profile-store,
    notifier, restoration and guard categories.
    """

    INVALID_CREDENTIALS = "invalid_credentials"
    USER_BANNED = "user_banned"
    EMAIL_ALREADY_EXISTS = "email_already_exists"
    WEAK_PASSWORD = "weak_password"
    RATE_LIMITED = "rate_limited"
    NETWORK_ERROR = "network_error"
    TIMEOUT_ERROR = "timeout_error"
    UNKNOWN_ERROR = "unknown_error"

    PERSISTENCE_ERROR = "persistence_error"
    PROFILE_NOT_FOUND = "profile_not_found"

    NOTIFICATION_ERROR = "notification_error"

    SESSION_NOT_FOUND = "session_not_found"

    PRECONDITION_NOT_MET = "precondition_not_met"
