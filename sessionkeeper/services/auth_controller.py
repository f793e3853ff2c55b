"""
Authentication Controller.

Single orchestrator for the session state machine: sign-up, sign-in,
sign-out, verification email, profile persistence and retrieval,
verification reconciliation, password reset, profile queries, and
startup restoration.

Phases::

    SIGNED_OUT ──sign_in──▶ AUTHENTICATING ──ok──▶ AUTHENTICATED
        │                         └──fail──▶ SIGNED_OUT
        └──sign_up──▶ REGISTERING ──profile saved──▶ AUTHENTICATED
                              └──create or save failed──▶ SIGNED_OUT
    (startup) RESTORING ──▶ AUTHENTICATED

Each operation issues its collaborator calls one after another, awaiting
each before starting the next, and returns a typed ``AuthResult``.
Failures are also projected onto ``SessionState.last_error`` for
observers.  Completions of different intents are applied in the order
they finish (last writer wins).
"""

from __future__ import annotations

import sqlite3
from typing import Callable, Optional

from sessionkeeper.exceptions import (
    CredentialFailure,
    NotificationFailure,
    PersistenceFailure,
    SessionKeeperError,
)
from sessionkeeper.interfaces import (
    CredentialProvider,
    ProfileStore,
    SessionStore,
    VerificationNotifier,
)
from sessionkeeper.logger import StructuredLogger
from sessionkeeper.models.auth_models import AuthResult, SessionState
from sessionkeeper.models.enums import AuthErrorCode, AuthPhase, Outcome
from sessionkeeper.models.profile import ProviderIdentity, UserProfile
from sessionkeeper.services.base_service import BaseService
from sessionkeeper.state import SessionStateHolder, StateListener
from sessionkeeper.utils.audit import log_audit_event

VERIFICATION_SENT_NOTICE: str = "Verification email sent."
PASSWORD_RESET_NOTICE: str = "Password reset email sent."
NO_SESSION_MESSAGE: str = "No active session found."


class AuthController(BaseService):
    """Owner of the published ``SessionState``.

    Parameters
    ----------
    credentials:
        Credential provider (sign-up / sign-in / sign-out / reset).
    notifier:
        Verification email sender.
    profiles:
        Durable profile store.
    session_store:
        Local key-value store holding the session marker.
    logger:
        Structured JSON logger.
    marker_key:
        Key of the session marker in *session_store*.
    state:
        Optional pre-built state holder (shared with observers).
    audit_conn:
        Optional SQLite connection; when given, audit events are also
        persisted to ``audit_log``.
    """

    def __init__(
        self,
        credentials: CredentialProvider,
        notifier: VerificationNotifier,
        profiles: ProfileStore,
        session_store: SessionStore,
        logger: StructuredLogger,
        marker_key: str = "user_session_id",
        state: Optional[SessionStateHolder] = None,
        audit_conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        super().__init__(logger)
        self._credentials = credentials
        self._notifier = notifier
        self._profiles = profiles
        self._session_store = session_store
        self._marker_key = marker_key
        self._holder: SessionStateHolder = state or SessionStateHolder(logger)
        self._audit_conn = audit_conn

    # ==================================================================
    # Observation
    # ==================================================================

    @property
    def state(self) -> SessionState:
        """Current published snapshot."""
        return self._holder.state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register *listener* for every state transition."""
        return self._holder.subscribe(listener)

    # ==================================================================
    # Registration
    # ==================================================================

    async def sign_up(self, name: str, email: str, password: str) -> AuthResult:
        """Create a credential, save its profile, then send verification.

        The save and the verification send are each attempted exactly once
        after a successful credential creation, in that order.  Their
        failures are reported but never roll back the created credential.
        The result is ``PARTIAL`` when either of them failed, carrying the
        last failure encountered.
        """
        self._holder.update(phase=AuthPhase.REGISTERING)

        try:
            identity = await self._credentials.create(email, password, display_name=name)
        except CredentialFailure as exc:
            self._holder.update(phase=AuthPhase.SIGNED_OUT, is_registered=False)
            return self._fail(exc, "sign_up")

        profile = UserProfile.provisional(
            identity, display_name=name, email=email, secret=password,
        )
        self._holder.update(current_profile=profile, is_registered=True)
        self._audit("REGISTER", identity.id, {"email": email})

        saved = await self.save_profile()
        self._holder.update(
            phase=AuthPhase.AUTHENTICATED if saved.success else AuthPhase.SIGNED_OUT,
        )

        # A delivery notice must not hide a save failure from this flow.
        sent = await self._send_verification(announce=saved.success)

        failures = [step for step in (saved, sent) if not step.success]
        last_failure = failures[-1] if failures else None
        return AuthResult(
            success=True,
            outcome=Outcome.PARTIAL if last_failure else Outcome.COMPLETED,
            error_code=last_failure.error_code if last_failure else None,
            error_message=last_failure.error_message if last_failure else None,
            user_id=identity.id,
            email=email,
            display_name=name,
        )

    # ==================================================================
    # Sign-in / sign-out
    # ==================================================================

    async def sign_in(self, email: str, password: str) -> AuthResult:
        """Authenticate, persist the session marker, then load the profile.

        The marker is written only after the provider accepted the
        credentials.  A failed profile fetch leaves the provisional profile
        in place and makes the result ``PARTIAL``.
        """
        self._holder.update(phase=AuthPhase.AUTHENTICATING)

        try:
            identity = await self._credentials.authenticate(email, password)
        except CredentialFailure as exc:
            self._holder.update(phase=AuthPhase.SIGNED_OUT, is_authenticated=False)
            return self._fail(exc, "sign_in")

        self._holder.update(
            current_profile=UserProfile.provisional(identity, email=email, secret=password),
            is_authenticated=True,
            raw_provider_identity=identity,
        )
        if not self._session_store.set(self._marker_key, identity.id):
            self._logger.warning(
                "Session marker for %s could not be written; the session "
                "will not be restored on next start.",
                identity.id,
            )
        self._audit("LOGIN", identity.id, {"email": email})

        fetched = await self.fetch_profile()
        self._holder.update(phase=AuthPhase.AUTHENTICATED)

        profile = self.state.current_profile
        return AuthResult(
            success=True,
            outcome=Outcome.COMPLETED if fetched.success else Outcome.PARTIAL,
            error_code=fetched.error_code,
            error_message=fetched.error_message,
            user_id=identity.id,
            email=profile.email if profile else email,
            display_name=profile.display_name if profile else None,
        )

    async def sign_out(self) -> AuthResult:
        """End the provider session, then clear local session state.

        On failure nothing local changes, so the client never believes it
        is signed out while the provider still holds an active session.
        """
        try:
            await self._credentials.deauthenticate()
        except CredentialFailure as exc:
            return self._fail(exc, "sign_out")

        previous = self.state.current_profile
        self._holder.update(
            phase=AuthPhase.SIGNED_OUT,
            current_profile=None,
            is_authenticated=False,
            is_registered=False,
            raw_provider_identity=None,
        )
        if not self._session_store.remove(self._marker_key):
            self._logger.warning(
                "Session marker could not be cleared; the next start will "
                "attempt a restoration that the provider will reject.",
            )
        user_id = previous.id if previous else "unknown"
        self._audit("LOGOUT", user_id)
        return AuthResult(success=True, outcome=Outcome.COMPLETED, user_id=user_id)

    # ==================================================================
    # Verification
    # ==================================================================

    async def send_verification(self) -> AuthResult:
        """Send a verification email for the active credential.

        Success places an informational notice in the ``last_error`` slot.
        """
        return await self._send_verification(announce=True)

    async def refresh_verification_status(self) -> AuthResult:
        """Reconcile the stored verification flag with the provider's.

        Acts only when the provider's signed-in account is the one the
        current profile belongs to.  When the flags already agree nothing
        is written (``UNCHANGED``), so repeated calls are idempotent.
        """
        profile = self.state.current_profile
        if profile is None:
            return AuthResult.precondition_not_met("There is no current profile to refresh.")

        try:
            identity = await self._credentials.current_identity()
        except CredentialFailure as exc:
            return self._fail(exc, "refresh_verification_status")

        if identity is None or identity.id != profile.id:
            self._logger.info(
                "Verification refresh skipped: provider identity %s does not "
                "match profile %s.",
                identity.id if identity else None,
                profile.id,
            )
            return AuthResult.precondition_not_met(
                "The signed-in account does not match the current profile.",
            )

        if identity.email_verified == profile.verified:
            return AuthResult(
                success=True, outcome=Outcome.UNCHANGED, user_id=profile.id,
            )

        try:
            await self._profiles.update_verification(profile.id, identity.email_verified)
        except PersistenceFailure as exc:
            return self._fail(exc, "refresh_verification_status")

        self._audit(
            "VERIFICATION_RECONCILED",
            profile.id,
            {"old": profile.verified, "new": identity.email_verified},
        )
        fetched = await self.fetch_profile()
        return AuthResult(
            success=True,
            outcome=Outcome.COMPLETED if fetched.success else Outcome.PARTIAL,
            error_code=fetched.error_code,
            error_message=fetched.error_message,
            user_id=profile.id,
        )

    # ==================================================================
    # Profile persistence
    # ==================================================================

    async def save_profile(self) -> AuthResult:
        """Persist the current profile.  Success is silent."""
        profile = self.state.current_profile
        if profile is None:
            return AuthResult.precondition_not_met("There is no current profile to save.")

        try:
            await self._profiles.save(profile)
        except PersistenceFailure as exc:
            return self._fail(exc, "save_profile")
        return AuthResult(success=True, outcome=Outcome.COMPLETED, user_id=profile.id)

    async def fetch_profile(self) -> AuthResult:
        """Replace the current profile with the durable record.

        Requires a signed-in provider account.  On failure the previous
        profile is left untouched.
        """
        try:
            identity = await self._credentials.current_identity()
        except CredentialFailure as exc:
            return self._fail(exc, "fetch_profile")
        if identity is None:
            return AuthResult.precondition_not_met("No account is signed in.")

        try:
            profile = await self._profiles.fetch(identity.id)
        except PersistenceFailure as exc:
            return self._fail(exc, "fetch_profile")

        self._holder.update(current_profile=profile)
        return AuthResult(
            success=True,
            outcome=Outcome.COMPLETED,
            user_id=profile.id,
            email=profile.email,
            display_name=profile.display_name,
        )

    # ==================================================================
    # Password reset
    # ==================================================================

    async def reset_password(self, email: str) -> AuthResult:
        try:
            await self._credentials.send_password_reset(email)
        except CredentialFailure as exc:
            self._holder.update(password_reset_requested=False)
            return self._fail(exc, "reset_password")

        self._holder.update(
            password_reset_requested=True,
            last_error=PASSWORD_RESET_NOTICE,
            last_error_code=None,
        )
        self._audit("PASSWORD_RESET_REQUESTED", email, {"email": email})
        return AuthResult(success=True, outcome=Outcome.COMPLETED, email=email)

    # ==================================================================
    # Profile queries (read-through; each writes only its own slot)
    # ==================================================================

    async def fetch_by_verification(self, is_verified: bool) -> AuthResult:
        try:
            profiles = await self._profiles.query_by_verification(is_verified)
        except PersistenceFailure as exc:
            return self._fail(exc, "fetch_by_verification")
        self._holder.update(filtered_profiles=tuple(profiles))
        return AuthResult(success=True, outcome=Outcome.COMPLETED)

    async def search(self, query: str) -> AuthResult:
        try:
            profiles = await self._profiles.search(query)
        except PersistenceFailure as exc:
            return self._fail(exc, "search")
        self._holder.update(search_results=tuple(profiles))
        return AuthResult(success=True, outcome=Outcome.COMPLETED)

    async def fetch_all(self) -> AuthResult:
        """Load every profile into ``filtered_profiles``."""
        try:
            profiles = await self._profiles.fetch_all()
        except PersistenceFailure as exc:
            return self._fail(exc, "fetch_all")
        self._holder.update(filtered_profiles=tuple(profiles))
        return AuthResult(success=True, outcome=Outcome.COMPLETED)

    # ==================================================================
    # Restoration (driven by StateObserverBridge)
    # ==================================================================

    async def restore_session(self, identity: Optional[ProviderIdentity]) -> AuthResult:
        """Apply a provider session-change notification.

        A present identity is treated as a successful restoration: a
        provisional profile is published, then replaced by the durable one.
        An absent identity publishes the "no session" condition.
        """
        if identity is None:
            self._holder.update(
                phase=AuthPhase.SIGNED_OUT,
                is_authenticated=False,
                raw_provider_identity=None,
                last_error=NO_SESSION_MESSAGE,
                last_error_code=AuthErrorCode.SESSION_NOT_FOUND,
            )
            self._logger.info(
                "Restoration found no provider session.",
                extra={"event": "SESSION_NOT_FOUND"},
            )
            return AuthResult.failed(AuthErrorCode.SESSION_NOT_FOUND, NO_SESSION_MESSAGE)

        self._holder.update(
            phase=AuthPhase.RESTORING,
            raw_provider_identity=identity,
            current_profile=UserProfile.provisional(identity),
            is_authenticated=True,
        )
        self._audit("SESSION_RESTORED", identity.id)

        fetched = await self.fetch_profile()
        self._holder.update(phase=AuthPhase.AUTHENTICATED)
        return AuthResult(
            success=True,
            outcome=Outcome.COMPLETED if fetched.success else Outcome.PARTIAL,
            error_code=fetched.error_code,
            error_message=fetched.error_message,
            user_id=identity.id,
            email=identity.email,
        )

    def abort_restoration(self, failure: SessionKeeperError) -> AuthResult:
        """Publish a restoration that could not even query the provider."""
        self._holder.update(phase=AuthPhase.SIGNED_OUT, is_authenticated=False)
        return self._fail(failure, "restore_session")

    # ==================================================================
    # Private helpers
    # ==================================================================

    async def _send_verification(self, announce: bool) -> AuthResult:
        try:
            await self._notifier.send()
        except NotificationFailure as exc:
            return self._fail(exc, "send_verification")

        if announce:
            self._holder.update(last_error=VERIFICATION_SENT_NOTICE, last_error_code=None)
        return AuthResult(success=True, outcome=Outcome.COMPLETED)

    def _fail(self, exc: SessionKeeperError, operation: str) -> AuthResult:
        """Project *exc* onto ``last_error`` and return it as a result."""
        self._holder.update(last_error=exc.message, last_error_code=exc.error_code)
        self._logger.warning(
            "%s failed (%s): %s",
            operation,
            exc.error_code,
            exc.message,
            extra={"event": f"{operation.upper()}_FAILED", "error_code": str(exc.error_code)},
        )
        return AuthResult.failed(exc.error_code, exc.message)

    def _audit(
        self,
        action: str,
        user_id: str,
        details: Optional[dict[str, object]] = None,
    ) -> None:
        log_audit_event(
            logger=self._logger,
            action=action,
            entity_type="Session",
            entity_id=user_id,
            user_id=user_id,
            details=details,
            conn=self._audit_conn,
        )
