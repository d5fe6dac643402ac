"""Process-wide credential cache with single-flight refresh."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from playbridge.infrastructure.observability.log_messages import LogMessages

logger = logging.getLogger(__name__)


# Hey future me - this replaces a module-level "current token" global. When the
# media server restarts, EVERY in-flight search gets a 401 at the same moment.
# Without single-flight each of them would log in again (refresh storm, and
# Navidrome rate-limits logins). Here the first caller starts one login task
# and everybody else awaits that same task.
# No lock needed: creating the task happens without an await in between, so
# on one event loop the check-then-create can't interleave.
class CredentialCache[C]:
    """Holds one credential and refreshes it at most once at a time."""

    def __init__(self, login: Callable[[], Awaitable[C]], service: str) -> None:
        self._login = login
        self._service = service
        self._credential: C | None = None
        self._refresh_task: asyncio.Task[C] | None = None
        self._waiters = 0
        self.login_count = 0

    @property
    def current(self) -> C | None:
        """Cached credential without triggering a login."""
        return self._credential

    async def get(self) -> C:
        """Cached credential, logging in when there is none."""
        if self._credential is not None:
            return self._credential
        return await self.refresh()

    def invalidate(self) -> None:
        """Drop the cached credential (e.g. on logout or config change)."""
        self._credential = None

    async def refresh(self, stale: C | None = None) -> C:
        """Log in again, sharing an in-flight login with concurrent callers.

        Args:
            stale: The credential the caller saw rejected. If the cache already
                holds a different one, somebody refreshed in the meantime and
                that one is returned without another login.
        """
        if stale is not None and self._credential is not None and self._credential is not stale:
            return self._credential
        if self._refresh_task is None:
            self._credential = None
            self._waiters = 0
            self._refresh_task = asyncio.create_task(self._do_refresh())
        self._waiters += 1
        return await asyncio.shield(self._refresh_task)

    async def _do_refresh(self) -> C:
        try:
            credential = await self._login()
            self.login_count += 1
            self._credential = credential
            logger.info(LogMessages.credential_refreshed(self._service, self._waiters))
            return credential
        finally:
            self._refresh_task = None
