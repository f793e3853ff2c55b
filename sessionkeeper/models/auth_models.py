"""
Authentication Pipeline Models.

Pydantic models for the contract between ``AuthController`` and its
observers: the published ``SessionState`` snapshot and the per-operation
``AuthResult``.  Every controller operation returns a structured,
inspectable result instead of leaving callers to diff the shared
last-error slot.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from sessionkeeper.models.enums import AuthErrorCode, AuthPhase, Outcome
from sessionkeeper.models.profile import ProviderIdentity, UserProfile


# ---------------------------------------------------------------------------
# Supabase error-code mapping
# ---------------------------------------------------------------------------

SUPABASE_ERROR_MAP: dict[str, tuple[AuthErrorCode, str]] = {
    "invalid_credentials": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "invalid login credentials": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "invalid_grant": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "user_not_found": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "user_banned": (
        AuthErrorCode.USER_BANNED,
        "This account has been disabled.",
    ),
    "user_already_exists": (
        AuthErrorCode.EMAIL_ALREADY_EXISTS,
        "An account with this email already exists. Try signing in.",
    ),
    "user already registered": (
        AuthErrorCode.EMAIL_ALREADY_EXISTS,
        "An account with this email already exists. Try signing in.",
    ),
    "weak_password": (
        AuthErrorCode.WEAK_PASSWORD,
        "The password does not meet the provider's strength requirements.",
    ),
    "over_email_send_rate_limit": (
        AuthErrorCode.RATE_LIMITED,
        "Too many emails were requested. Please wait before trying again.",
    ),
    "over_request_rate_limit": (
        AuthErrorCode.RATE_LIMITED,
        "Too many requests. Please wait before trying again.",
    ),
}


# ---------------------------------------------------------------------------
# Published session state
# ---------------------------------------------------------------------------

class SessionState(BaseModel):
    """Immutable snapshot of the session, replaced on every transition.

    Attributes
    ----------
    phase:
        Current state-machine phase.
    current_profile:
        The in-memory profile owned by the controller, if any.
    is_authenticated:
        ``True`` only while ``current_profile`` is set and the session was
        established via sign-in or restoration.
    is_registered:
        ``True`` only right after a successful sign-up; never restored.
    last_error:
        Most recent user-facing message.  Informational notices (e.g.
        "Verification email sent.") share this slot.
    last_error_code:
        Category of the last failure, or ``None`` when ``last_error`` holds
        an informational notice.
    password_reset_requested:
        ``True`` after a successful password-reset request.
    filtered_profiles:
        Output of the verification filter / fetch-all queries.
    search_results:
        Output of free-text search.
    raw_provider_identity:
        Provider handle captured on sign-in or restoration.
    """

    phase: AuthPhase = AuthPhase.SIGNED_OUT
    current_profile: Optional[UserProfile] = None
    is_authenticated: bool = False
    is_registered: bool = False
    last_error: Optional[str] = None
    last_error_code: Optional[AuthErrorCode] = None
    password_reset_requested: bool = False
    filtered_profiles: tuple[UserProfile, ...] = ()
    search_results: tuple[UserProfile, ...] = ()
    raw_provider_identity: Optional[ProviderIdentity] = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Unified operation response
# ---------------------------------------------------------------------------

class AuthResult(BaseModel):
    """Typed result returned by every ``AuthController`` operation.

    ``success`` is ``True`` when the operation's primary step went through
    (``COMPLETED``, ``PARTIAL`` or ``UNCHANGED``).  ``error_code`` and
    ``error_message`` describe the last failure encountered, including a
    failed chained step of a ``PARTIAL`` result.

    Attributes
    ----------
    success:
        Whether the primary step succeeded.
    outcome:
        Finer-grained resolution, see :class:`Outcome`.
    error_code:
        Structured failure category (``None`` on clean success).
    error_message:
        Human-readable failure description (``None`` on clean success).
    user_id:
        Identity the operation acted on, when known.
    email:
        Email the operation acted on, when known.
    display_name:
        Display name of the profile, when known.
    """

    success: bool
    outcome: Outcome
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None
    user_id: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None

    model_config = {"from_attributes": True}

    @classmethod
    def failed(cls, error_code: AuthErrorCode, error_message: str) -> "AuthResult":
        return cls(
            success=False,
            outcome=Outcome.FAILED,
            error_code=error_code,
            error_message=error_message,
        )

    @classmethod
    def precondition_not_met(cls, reason: str) -> "AuthResult":
        return cls(
            success=False,
            outcome=Outcome.PRECONDITION_NOT_MET,
            error_code=AuthErrorCode.PRECONDITION_NOT_MET,
            error_message=reason,
        )
