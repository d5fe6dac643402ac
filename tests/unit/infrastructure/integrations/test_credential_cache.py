"""Unit tests for CredentialCache single-flight refresh."""

import asyncio

from playbridge.infrastructure.integrations.credential_cache import CredentialCache


class _Login:
    """Login stub that blocks until released and hands out numbered tokens."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        await self.release.wait()
        return f"token-{self.calls}"


class TestCredentialCache:
    """Tests for CredentialCache."""

    async def test_get_logs_in_once(self) -> None:
        login = _Login()
        login.release.set()
        cache = CredentialCache(login, "navidrome")

        assert await cache.get() == "token-1"
        assert await cache.get() == "token-1"
        assert login.calls == 1

    async def test_concurrent_refreshes_share_one_login(self) -> None:
        """Test a burst of 401s triggers a single login."""
        login = _Login()
        cache = CredentialCache(login, "navidrome")

        waiters = [asyncio.create_task(cache.refresh()) for _ in range(10)]
        await asyncio.sleep(0)
        login.release.set()
        tokens = await asyncio.gather(*waiters)

        assert set(tokens) == {"token-1"}
        assert login.calls == 1
        assert cache.login_count == 1

    async def test_stale_credential_skips_login(self) -> None:
        """Test a caller holding an old token gets the newer one for free."""
        login = _Login()
        login.release.set()
        cache = CredentialCache(login, "navidrome")
        old = await cache.get()
        new = await cache.refresh(stale=old)

        assert new == "token-2"
        assert await cache.refresh(stale=old) == "token-2"
        assert login.calls == 2

    async def test_invalidate(self) -> None:
        login = _Login()
        login.release.set()
        cache = CredentialCache(login, "navidrome")
        await cache.get()

        cache.invalidate()

        assert cache.current is None
        assert await cache.get() == "token-2"
