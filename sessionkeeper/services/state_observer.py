"""
Startup Session Restoration.

``StateObserverBridge`` decides at startup whether a previous session is
worth restoring (a session marker exists locally) and, if so, listens to
the credential provider's session-change stream for the rest of the
process, handing every notification to ``AuthController.restore_session``.

Provider callbacks may arrive on a foreign thread (the Supabase client
fires them from wherever the token refresh happened), so each one is
re-dispatched onto the event loop that called :meth:`start`.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from sessionkeeper.exceptions import CredentialFailure, SessionRestoreFailure
from sessionkeeper.interfaces import CredentialProvider, SessionStore, Unsubscribe
from sessionkeeper.logger import StructuredLogger
from sessionkeeper.models.auth_models import AuthResult
from sessionkeeper.models.profile import ProviderIdentity
from sessionkeeper.services.auth_controller import NO_SESSION_MESSAGE, AuthController
from sessionkeeper.services.base_service import BaseService


class StateObserverBridge(BaseService):
    """Connects the provider's session stream to the controller.

    Parameters
    ----------
    controller:
        The controller whose state restorations are applied to.
    credentials:
        Provider whose session-change stream is observed.
    session_store:
        Local store holding the session marker.
    logger:
        Structured logger instance.
    marker_key:
        Key of the session marker in *session_store*.
    """

    def __init__(
        self,
        controller: AuthController,
        credentials: CredentialProvider,
        session_store: SessionStore,
        logger: StructuredLogger,
        marker_key: str = "user_session_id",
    ) -> None:
        super().__init__(logger)
        self._controller = controller
        self._credentials = credentials
        self._session_store = session_store
        self._marker_key = marker_key
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        self._marker: Optional[str] = None
        self._tasks: set[asyncio.Task[AuthResult]] = set()

    @property
    def is_observing(self) -> bool:
        return self._unsubscribe is not None

    async def start(self) -> bool:
        """Read the session marker and subscribe when one is present.

        Returns ``True`` when the bridge is now observing the provider.
        Without a marker nothing is subscribed and the controller stays
        signed out.
        """
        if self._unsubscribe is not None:
            return True

        self._loop = asyncio.get_running_loop()
        self._marker = self._session_store.get(self._marker_key)
        if self._marker is None:
            self._logger.info("No session marker stored; skipping restoration.")
            return False

        self._logger.info(
            "Session marker found for %s; observing provider session.",
            self._marker,
            extra={"event": "RESTORE_STARTED", "user_id": self._marker},
        )
        try:
            self._unsubscribe = await self._credentials.subscribe(self._on_session_changed)
        except CredentialFailure as exc:
            self._logger.error("Could not observe the provider session: %s", exc.message)
            self._controller.abort_restoration(exc)
            return False
        return True

    async def drain(self) -> None:
        """Wait until every dispatched restoration has finished."""
        # Let callbacks queued via call_soon_threadsafe create their tasks.
        await asyncio.sleep(0)
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            await asyncio.sleep(0)

    async def stop(self) -> None:
        """Stop observing the provider and wait for in-flight work."""
        if self._unsubscribe is not None:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            unsubscribe()
        await self.drain()

    # ------------------------------------------------------------------
    # Provider callback
    # ------------------------------------------------------------------

    def _on_session_changed(self, identity: Optional[ProviderIdentity]) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            self._logger.warning(
                "Session change received after shutdown; ignored.",
            )
            return
        loop.call_soon_threadsafe(self._spawn_restore, identity)

    def _spawn_restore(self, identity: Optional[ProviderIdentity]) -> None:
        task = asyncio.ensure_future(self._restore(identity))
        self._tasks.add(task)
        task.add_done_callback(self._on_restore_done)

    async def _restore(self, identity: Optional[ProviderIdentity]) -> AuthResult:
        if identity is not None and identity.id != self._marker:
            self._logger.info(
                "Provider session belongs to %s, marker was %s.",
                identity.id,
                self._marker,
            )
        result = await self._controller.restore_session(identity)
        if identity is None:
            raise SessionRestoreFailure(result.error_message or NO_SESSION_MESSAGE)
        return result

    def _on_restore_done(self, task: "asyncio.Task[AuthResult]") -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, SessionRestoreFailure):
            self._logger.warning(
                "Session restoration failed: %s",
                exc.message,
                extra={"event": "RESTORE_FAILED", "error_code": str(exc.error_code)},
            )
        elif exc is not None:
            self._logger.error(
                "Session restoration crashed: %s", exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
