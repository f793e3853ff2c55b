"""
Email Verification Service.

Sends the account-confirmation email for the credential the current flow
is working with: the signed-in Supabase user when a session exists, or
the account just created when Supabase withheld the session pending
email confirmation.
"""

from __future__ import annotations

from typing import Optional

from sessionkeeper.database import DatabaseManager
from sessionkeeper.exceptions import NotificationFailure
from sessionkeeper.logger import StructuredLogger
from sessionkeeper.models.enums import AuthErrorCode
from sessionkeeper.services.base_service import BaseService
from sessionkeeper.services.credential_provider import (
    SupabaseCredentialProvider,
    classify_supabase_error,
)


class SupabaseVerificationNotifier(BaseService):
    """``VerificationNotifier`` backed by Supabase ``auth.resend``."""

    def __init__(
        self,
        db: DatabaseManager,
        credentials: SupabaseCredentialProvider,
        logger: StructuredLogger,
        email_redirect_url: str = "",
    ) -> None:
        super().__init__(logger)
        self._db = db
        self._credentials = credentials
        self._email_redirect_url = email_redirect_url

    async def send(self) -> None:
        """Send a verification email for the active or pending account.

        An account whose address is already confirmed is not mailed again.

        Raises:
            NotificationFailure: There is no account to verify, or Supabase
                refused or could not be reached.
        """
        email = await self._target_email()
        if email is None:
            return

        params: dict[str, object] = {"type": "signup", "email": email}
        if self._email_redirect_url:
            params["options"] = {"email_redirect_to": self._email_redirect_url}

        try:
            await self._db.supabase.auth.resend(params)
        except Exception as exc:
            raise self._failure(exc) from exc

        self._logger.info(
            "Verification email sent to %s.", email,
            extra={"event": "VERIFICATION_SENT"},
        )

    async def _target_email(self) -> Optional[str]:
        """Address to mail, or ``None`` when it is already confirmed."""
        try:
            session = await self._db.supabase.auth.get_session()
        except Exception as exc:
            raise self._failure(exc) from exc

        user = session.user if session is not None else None
        if user is not None:
            if getattr(user, "email_confirmed_at", None) is not None:
                self._logger.info(
                    "Account %s is already verified; no email sent.", user.id,
                )
                return None
            if user.email:
                return user.email

        pending = self._credentials.pending_email
        if pending:
            return pending
        raise NotificationFailure(
            "No account to send a verification email to.",
        )

    def _failure(self, exc: Exception) -> NotificationFailure:
        error_code, message = classify_supabase_error(exc)
        self._logger.warning("Verification email failed (%s): %s", error_code, exc)
        if error_code == AuthErrorCode.UNKNOWN_ERROR:
            error_code = AuthErrorCode.NOTIFICATION_ERROR
            message = "The verification email could not be sent. Please try again later."
        return NotificationFailure(message, error_code=error_code, original_error=exc)
