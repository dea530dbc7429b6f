"""
Tests for platform capability adapters.
"""

import asyncio
import socket

import pytest

from podlink.platform import (
    ConnectivityProbe,
    ForegroundState,
    NetworkState,
    SystemClock,
)


class TestFlags:
    def test_foreground_notifies_on_change_only(self):
        state = ForegroundState()
        seen = []
        state.subscribe(seen.append)

        state.set_visible(True)
        state.set_visible(False)
        state.set_visible(False)
        state.set_visible(True)

        assert seen == [False, True]
        assert state.is_visible()

    def test_unsubscribe(self):
        state = NetworkState()
        seen = []
        unsubscribe = state.subscribe(seen.append)

        unsubscribe()
        state.set_online(False)

        assert seen == []
        assert not state.is_online()

    def test_failing_subscriber_does_not_block_others(self):
        state = NetworkState()
        seen = []

        def broken(value):
            raise RuntimeError("bug")

        state.subscribe(broken)
        state.subscribe(seen.append)
        state.set_online(False)

        assert seen == [False]


class TestSystemClock:
    @pytest.mark.asyncio
    async def test_call_later_runs_on_loop(self):
        clock = SystemClock()
        fired = asyncio.Event()

        clock.call_later(1, fired.set)

        await asyncio.wait_for(fired.wait(), 1)

    @pytest.mark.asyncio
    async def test_cancel(self):
        clock = SystemClock()
        fired = []

        handle = clock.call_later(1, lambda: fired.append(1))
        handle.cancel()
        await asyncio.sleep(0.02)

        assert fired == []

    def test_now_is_milliseconds(self):
        assert SystemClock().now() > 1_600_000_000_000


class TestConnectivityProbe:
    def test_port_from_scheme(self):
        state = NetworkState()
        assert ConnectivityProbe("https://pod.local", state).port == 443
        assert ConnectivityProbe("http://pod.local", state).port == 80
        assert ConnectivityProbe("ws://pod.local:3000", state).port == 3000

    @pytest.mark.asyncio
    async def test_reachable_server(self):
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        state = NetworkState(online=False)

        async with server:
            probe = ConnectivityProbe(f"http://127.0.0.1:{port}", state)
            assert await probe.check() is True

        assert state.is_online()

    @pytest.mark.asyncio
    async def test_unreachable_server(self):
        with socket.socket() as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]
        state = NetworkState()

        probe = ConnectivityProbe(f"http://127.0.0.1:{port}", state, timeout=1)

        assert await probe.check() is False
        assert not state.is_online()

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        probe = ConnectivityProbe("http://127.0.0.1:9", NetworkState(), interval=10)
        probe.start()
        await probe.stop()
        await probe.stop()
