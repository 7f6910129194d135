"""Tests for the OAuth callback listener and result handoff."""

import asyncio
import socket
import threading
from collections.abc import Iterator

import httpx
import pytest

from lark_cli.auth.oauth.callback import (
    SUCCESS_PAGE_TEXT,
    CallbackResultChannel,
    OAuthCallbackResult,
    OAuthCallbackServer,
    OneShotLatch,
)
from lark_cli.exceptions import (
    OAuthCallbackError,
    OAuthLoginError,
    OAuthStateMismatchError,
    OAuthTimeoutError,
)


HOST = "127.0.0.1"
EXPECTED_STATE = "expected-state"


async def fetch(url: str) -> httpx.Response:
    """GET from a worker thread so the event loop keeps running."""
    return await asyncio.to_thread(httpx.get, url, trust_env=False)


@pytest.fixture
def started_server() -> Iterator[
    tuple[OAuthCallbackServer, CallbackResultChannel, asyncio.AbstractEventLoop]
]:
    loop = asyncio.new_event_loop()
    channel = CallbackResultChannel(loop)
    server = OAuthCallbackServer(EXPECTED_STATE, channel, host=HOST, port=0)
    server.start()
    yield server, channel, loop
    server.close()
    loop.close()


def callback_url(server: OAuthCallbackServer, query: str) -> str:
    return f"http://{HOST}:{server.server_port}/oauth/callback?{query}"


class TestOneShotLatch:
    """Tests for the single-fire latch."""

    def test_fires_once(self) -> None:
        latch = OneShotLatch()

        assert latch.fired is False
        assert latch.try_fire() is True
        assert latch.try_fire() is False
        assert latch.fired is True

    def test_concurrent_callers(self) -> None:
        latch = OneShotLatch()
        results: list[bool] = []
        barrier = threading.Barrier(16)

        def worker() -> None:
            barrier.wait()
            results.append(latch.try_fire())

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1


class TestCallbackResultChannel:
    """Tests for delivering exactly one outcome to the waiter."""

    @pytest.mark.asyncio
    async def test_first_offer_wins(self) -> None:
        channel = CallbackResultChannel()

        assert channel.offer(OAuthCallbackResult(code="first")) is True
        assert channel.offer(OAuthCallbackResult(code="second")) is False
        assert await channel.receive(1.0) == "first"

    @pytest.mark.asyncio
    async def test_error_outcome_raised(self) -> None:
        channel = CallbackResultChannel()
        channel.offer(OAuthCallbackResult(error=OAuthCallbackError("oauth error: denied")))

        with pytest.raises(OAuthCallbackError, match="oauth error: denied"):
            await channel.receive(1.0)

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        channel = CallbackResultChannel()

        with pytest.raises(OAuthTimeoutError, match="timed out waiting for OAuth callback"):
            await channel.receive(0.01)

    @pytest.mark.asyncio
    async def test_concurrent_offers_from_threads(self) -> None:
        channel = CallbackResultChannel()
        accepted: dict[str, bool] = {}
        barrier = threading.Barrier(8)

        def worker(code: str) -> None:
            barrier.wait()
            accepted[code] = channel.offer(OAuthCallbackResult(code=code))

        threads = [
            threading.Thread(target=worker, args=(f"code-{i}",)) for i in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        winners = [code for code, ok in accepted.items() if ok]
        assert len(winners) == 1
        assert await channel.receive(1.0) == winners[0]

    def test_offer_after_loop_closed(self) -> None:
        loop = asyncio.new_event_loop()
        channel = CallbackResultChannel(loop)
        loop.close()

        assert channel.offer(OAuthCallbackResult(code="late")) is False


class TestOAuthCallbackServer:
    """Tests for the HTTP listener."""

    def test_success(self, started_server) -> None:
        server, channel, loop = started_server

        async def scenario() -> tuple[httpx.Response, str]:
            response = await fetch(callback_url(server, f"state={EXPECTED_STATE}&code=c1"))
            return response, await channel.receive(2.0)

        response, code = loop.run_until_complete(scenario())

        assert response.status_code == 200
        assert response.text == SUCCESS_PAGE_TEXT
        assert code == "c1"

    def test_state_mismatch(self, started_server) -> None:
        server, channel, loop = started_server

        async def scenario() -> httpx.Response:
            response = await fetch(callback_url(server, "state=forged&code=c1"))
            with pytest.raises(OAuthStateMismatchError, match="oauth state mismatch"):
                await channel.receive(2.0)
            return response

        response = loop.run_until_complete(scenario())

        assert response.status_code == 400
        assert response.text == "Login failed: OAuth state mismatch"

    def test_provider_error(self, started_server) -> None:
        server, channel, loop = started_server
        query = (
            f"state={EXPECTED_STATE}&error=access_denied"
            "&error_description=user%20denied"
        )

        async def scenario() -> httpx.Response:
            response = await fetch(callback_url(server, query))
            with pytest.raises(OAuthCallbackError) as exc_info:
                await channel.receive(2.0)
            assert str(exc_info.value) == "oauth error: access_denied: user denied"
            return response

        response = loop.run_until_complete(scenario())

        assert response.status_code == 400
        assert response.text == "Login failed: access_denied"

    def test_missing_code(self, started_server) -> None:
        server, channel, loop = started_server

        async def scenario() -> httpx.Response:
            response = await fetch(callback_url(server, f"state={EXPECTED_STATE}"))
            with pytest.raises(OAuthCallbackError, match="oauth callback missing code"):
                await channel.receive(2.0)
            return response

        response = loop.run_until_complete(scenario())

        assert response.text == "Login failed: missing code"

    def test_other_paths_ignored(self, started_server) -> None:
        server, channel, loop = started_server

        async def scenario() -> tuple[httpx.Response, str]:
            stray = await fetch(f"http://{HOST}:{server.server_port}/favicon.ico")
            await fetch(callback_url(server, f"state={EXPECTED_STATE}&code=c2"))
            return stray, await channel.receive(2.0)

        stray, code = loop.run_until_complete(scenario())

        assert stray.status_code == 404
        assert code == "c2"

    def test_port_in_use(self) -> None:
        loop = asyncio.new_event_loop()
        with socket.socket() as occupied:
            occupied.bind((HOST, 0))
            occupied.listen()
            port = occupied.getsockname()[1]
            server = OAuthCallbackServer(
                EXPECTED_STATE, CallbackResultChannel(loop), host=HOST, port=port
            )

            with pytest.raises(OAuthLoginError, match=f"^listen on {HOST}:{port}: "):
                server.start()
        loop.close()
