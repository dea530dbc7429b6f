"""
Tests for TerminalClient routing between the live connection and the queue.
"""

import pytest

from podlink.client import TerminalClient
from podlink.events import Connected
from podlink.offline.models import ResizePayload


@pytest.fixture
def client(make_manager, offline_queue):
    return TerminalClient(make_manager(), offline_queue)


class TestRouting:
    @pytest.mark.asyncio
    async def test_live_input_goes_straight_out(self, client, transports, offline_queue):
        client.attach("work")
        transports.last.accept()
        await client._replay_task

        assert await client.send_input("ls\r") is True
        assert transports.last.messages() == [{"type": "input", "data": "ls\r"}]
        assert await offline_queue.get_queue_count("work") == 0

    @pytest.mark.asyncio
    async def test_offline_input_is_queued(self, client, offline_queue):
        client.attach("work")

        assert await client.send_input("ls\r") is False

        (item,) = await offline_queue.get_queue("work")
        assert item.kind == "input"
        assert item.payload == "ls\r"

    @pytest.mark.asyncio
    async def test_offline_resize_is_queued(self, client, offline_queue):
        client.attach("work")

        await client.send_resize(100, 30)

        (item,) = await offline_queue.get_queue("work")
        assert item.payload == ResizePayload(cols=100, rows=30)

    @pytest.mark.asyncio
    async def test_input_before_attach_is_dropped(self, client, offline_queue):
        assert await client.send_input("x") is False
        assert await offline_queue.get_total_count() == 0


class TestReconnectFlush:
    @pytest.mark.asyncio
    async def test_connect_announces_size_then_replays(
        self, client, transports, offline_queue
    ):
        client.set_dimensions(80, 24)
        client.attach("work")
        await client.send_input("a")
        await client.send_input("b")

        transports.last.accept()
        replayed = await client._replay_task

        assert replayed == 2
        assert transports.last.messages() == [
            {"type": "resize", "cols": 80, "rows": 24},
            {"type": "input", "data": "a"},
            {"type": "input", "data": "b"},
        ]
        assert await offline_queue.get_queue_count("work") == 0

    @pytest.mark.asyncio
    async def test_replay_after_reconnect(self, client, transports, clock, offline_queue):
        client.attach("work")
        transports.last.accept()
        await client._replay_task
        transports.last.drop(1006)

        await client.send_input("while away")
        clock.advance(1000)
        transports.last.accept()

        assert await client._replay_task == 1
        assert transports.last.messages() == [{"type": "input", "data": "while away"}]

    @pytest.mark.asyncio
    async def test_flush_keeps_items_when_disconnected(self, client, offline_queue):
        client.attach("work")
        await client.send_input("a")

        assert await client.flush_queue() == 0
        assert await offline_queue.get_queue_count("work") == 1

    @pytest.mark.asyncio
    async def test_flush_without_session(self, client):
        assert await client.flush_queue() == 0


class TestReplaySink:
    def test_unknown_kind_is_refused(self, client):
        assert client.replay_sink("paste", "x") is False

    def test_mismatched_payload_is_refused(self, client):
        assert client.replay_sink("resize", "80x24") is False


@pytest.mark.asyncio
async def test_close_tears_down(client, transports, offline_queue):
    client.attach("work")
    transports.last.accept()

    await client.close()

    assert transports.last.closed == (1000, "Destroyed")
    assert client.connection.listener_count(Connected) == 0
