"""
Supabase Credential Provider.

Adapter that exposes Supabase Auth through the ``CredentialProvider``
contract: account creation, password sign-in, sign-out, password-reset
emails, the current identity, and a session-change stream.

Every Supabase or network exception is classified into a
``CredentialFailure`` carrying an ``AuthErrorCode`` and a human-readable
message, so callers never inspect raw provider errors.
"""

from __future__ import annotations

from typing import Optional

from sessionkeeper.database import DatabaseManager
from sessionkeeper.exceptions import CredentialFailure
from sessionkeeper.interfaces import SessionListener, Unsubscribe
from sessionkeeper.logger import StructuredLogger
from sessionkeeper.models.auth_models import SUPABASE_ERROR_MAP
from sessionkeeper.models.enums import AuthErrorCode
from sessionkeeper.models.profile import ProviderIdentity
from sessionkeeper.services.base_service import BaseService


def classify_supabase_error(exc: Exception) -> tuple[AuthErrorCode, str]:
    """Map a Supabase or network exception to a code and user message.

    ``RuntimeError`` is what ``DatabaseManager.supabase`` raises in offline
    mode, so it is reported as a network problem.
    """
    if isinstance(exc, RuntimeError):
        return (
            AuthErrorCode.NETWORK_ERROR,
            "Cannot reach the server. An internet connection is required.",
        )
    if isinstance(exc, TimeoutError):
        return (
            AuthErrorCode.TIMEOUT_ERROR,
            "The server took too long to respond. Please try again.",
        )
    if isinstance(exc, ConnectionError):
        return (
            AuthErrorCode.NETWORK_ERROR,
            "Cannot reach the server. Check your internet connection.",
        )

    # Newer gotrue errors carry a machine-readable ``code``; older ones
    # only have the message text.
    haystack = f"{getattr(exc, 'code', '') or ''} {exc}".lower()
    for code_key, (error_code, human_message) in SUPABASE_ERROR_MAP.items():
        if code_key in haystack:
            return error_code, human_message

    return (
        AuthErrorCode.UNKNOWN_ERROR,
        "An unexpected error occurred. Please try again later.",
    )


def identity_from_user(user: object) -> ProviderIdentity:
    """Build a ``ProviderIdentity`` from a gotrue ``User``."""
    return ProviderIdentity(
        id=str(getattr(user, "id")),
        email=getattr(user, "email", None) or "",
        email_verified=getattr(user, "email_confirmed_at", None) is not None,
    )


class SupabaseCredentialProvider(BaseService):
    """``CredentialProvider`` backed by Supabase Auth.

    Parameters
    ----------
    db:
        Database manager exposing the async Supabase client.
    logger:
        Structured logger instance.
    password_reset_redirect_url:
        Optional ``redirect_to`` embedded in password-reset emails.
    email_redirect_url:
        Optional ``email_redirect_to`` embedded in sign-up confirmation
        emails.
    """

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        password_reset_redirect_url: str = "",
        email_redirect_url: str = "",
    ) -> None:
        super().__init__(logger)
        self._db = db
        self._password_reset_redirect_url = password_reset_redirect_url
        self._email_redirect_url = email_redirect_url
        self._pending_email: Optional[str] = None

    @property
    def pending_email(self) -> Optional[str]:
        """Address of the last account created in this process that came
        back without a session (email confirmation pending)."""
        return self._pending_email

    # ------------------------------------------------------------------
    # Credential operations
    # ------------------------------------------------------------------

    async def create(
        self, email: str, password: str, display_name: Optional[str] = None,
    ) -> ProviderIdentity:
        """Create an account.

        Supabase signs the new user in only when email confirmation is
        disabled.  Otherwise the response carries no session, and the
        address is remembered as ``pending_email`` for the verification
        notifier.
        """
        options: dict[str, object] = {}
        if display_name:
            options["data"] = {"display_name": display_name}
        if self._email_redirect_url:
            options["email_redirect_to"] = self._email_redirect_url

        try:
            response = await self._db.supabase.auth.sign_up({
                "email": email,
                "password": password,
                "options": options,
            })
        except Exception as exc:
            raise self._failure("sign_up", exc) from exc

        if response.user is None:
            raise CredentialFailure(
                "Registration could not be completed. Please try again later.",
            )
        identity = identity_from_user(response.user)
        self._pending_email = (identity.email or email) if response.session is None else None
        self._logger.info(
            "Credential created for %s.", identity.id,
            extra={"event": "PROVIDER_SIGN_UP", "user_id": identity.id},
        )
        return identity

    async def authenticate(self, email: str, password: str) -> ProviderIdentity:
        try:
            response = await self._db.supabase.auth.sign_in_with_password({
                "email": email,
                "password": password,
            })
        except Exception as exc:
            raise self._failure("sign_in", exc) from exc

        if response.user is None:
            raise CredentialFailure(
                "Incorrect email or password.",
                error_code=AuthErrorCode.INVALID_CREDENTIALS,
            )
        self._pending_email = None
        return identity_from_user(response.user)

    async def deauthenticate(self) -> None:
        try:
            await self._db.supabase.auth.sign_out()
        except Exception as exc:
            raise self._failure("sign_out", exc) from exc
        self._pending_email = None

    async def send_password_reset(self, email: str) -> None:
        options: dict[str, str] = {}
        if self._password_reset_redirect_url:
            options["redirect_to"] = self._password_reset_redirect_url
        try:
            await self._db.supabase.auth.reset_password_for_email(email, options)
        except Exception as exc:
            raise self._failure("reset_password", exc) from exc

    # ------------------------------------------------------------------
    # Session queries
    # ------------------------------------------------------------------

    async def current_identity(self) -> Optional[ProviderIdentity]:
        """Return the signed-in account, re-read from the server.

        The locally stored session tells us whether anyone is signed in;
        ``get_user`` then fetches a fresh ``email_confirmed_at`` so
        verification reconciliation never acts on a stale flag.
        """
        try:
            session = await self._db.supabase.auth.get_session()
            if session is None:
                return None
            response = await self._db.supabase.auth.get_user()
        except Exception as exc:
            raise self._failure("get_user", exc) from exc

        if response is None or response.user is None:
            return None
        return identity_from_user(response.user)

    async def subscribe(self, listener: SessionListener) -> Unsubscribe:
        """Relay Supabase auth-state events to *listener*.

        Supabase does not replay the current state to new subscribers, so
        the current session is delivered once right after registering.
        """
        def _relay(event: object, session: object) -> None:
            user = getattr(session, "user", None) if session is not None else None
            self._logger.debug("Auth state change: %s", event)
            listener(identity_from_user(user) if user is not None else None)

        try:
            subscription = self._db.supabase.auth.on_auth_state_change(_relay)
        except Exception as exc:
            raise self._failure("subscribe", exc) from exc

        try:
            session = await self._db.supabase.auth.get_session()
        except Exception as exc:
            subscription.unsubscribe()
            raise self._failure("subscribe", exc) from exc

        user = session.user if session is not None else None
        listener(identity_from_user(user) if user is not None else None)
        return subscription.unsubscribe

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _failure(self, operation: str, exc: Exception) -> CredentialFailure:
        error_code, message = classify_supabase_error(exc)
        self._logger.warning(
            "Credential provider error during %s (%s): %s",
            operation,
            error_code,
            exc,
            extra={"event": "PROVIDER_ERROR", "error_code": str(error_code)},
        )
        return CredentialFailure(message, error_code=error_code, original_error=exc)
