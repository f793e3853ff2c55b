"""
Session Services Package.

Adapters for Supabase Auth and the profiles table, the local session
marker store, the ``AuthController`` state machine, and the startup
restoration bridge.

The ``create_services()`` factory wires every repository and service
together, returning a typed dict that the entry point can consume without
knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from sessionkeeper.config import AppConfig
from sessionkeeper.database import DatabaseManager
from sessionkeeper.logger import StructuredLogger, get_logger
from sessionkeeper.repositories.profile_repository import ProfileRepository
from sessionkeeper.services.auth_controller import AuthController
from sessionkeeper.services.credential_provider import SupabaseCredentialProvider
from sessionkeeper.services.session_store import SessionStore
from sessionkeeper.services.state_observer import StateObserverBridge
from sessionkeeper.services.verification_service import SupabaseVerificationNotifier


class ServiceContainer(TypedDict):
    """Typed container for all application services."""

    session_store: SessionStore
    profile_repository: ProfileRepository
    credential_provider: SupabaseCredentialProvider
    verification_notifier: SupabaseVerificationNotifier
    auth_controller: AuthController
    state_observer: StateObserverBridge


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    logger: Optional[StructuredLogger] = None,
) -> ServiceContainer:
    """
    Wire all repositories and services together.

    Args:
        db: Initialised DatabaseManager (schema already applied).
        config: Application configuration.
        logger: Parent logger; each service logs under a child of it.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = logger or get_logger("sessionkeeper")

    # ------------------------------------------------------------------
    # 1. Storage
    # ------------------------------------------------------------------
    session_store = SessionStore(db=db, logger=logger.child("session_store"))
    profile_repository = ProfileRepository(
        db=db,
        logger=logger.child("profiles"),
        remote_table=config.PROFILES_TABLE,
    )

    # ------------------------------------------------------------------
    # 2. Supabase Auth adapters
    # ------------------------------------------------------------------
    credential_provider = SupabaseCredentialProvider(
        db=db,
        logger=logger.child("credentials"),
        password_reset_redirect_url=config.PASSWORD_RESET_REDIRECT_URL,
        email_redirect_url=config.EMAIL_REDIRECT_URL,
    )
    verification_notifier = SupabaseVerificationNotifier(
        db=db,
        credentials=credential_provider,
        logger=logger.child("verification"),
        email_redirect_url=config.EMAIL_REDIRECT_URL,
    )

    # ------------------------------------------------------------------
    # 3. Orchestration
    # ------------------------------------------------------------------
    auth_controller = AuthController(
        credentials=credential_provider,
        notifier=verification_notifier,
        profiles=profile_repository,
        session_store=session_store,
        logger=logger.child("auth"),
        marker_key=config.SESSION_MARKER_KEY,
        audit_conn=db.sqlite,
    )
    state_observer = StateObserverBridge(
        controller=auth_controller,
        credentials=credential_provider,
        session_store=session_store,
        logger=logger.child("restore"),
        marker_key=config.SESSION_MARKER_KEY,
    )

    return ServiceContainer(
        session_store=session_store,
        profile_repository=profile_repository,
        credential_provider=credential_provider,
        verification_notifier=verification_notifier,
        auth_controller=auth_controller,
        state_observer=state_observer,
    )
