"""Shared pytest fixtures: a manual clock, a scripted transport and stores."""

import json

import pytest

from podlink.config import ConnectionOptions
from podlink.connection.manager import ConnectionManager
from podlink.connection.transport import Transport
from podlink.errors import TransportError
from podlink.offline.offline_queue import OfflineQueue
from podlink.offline.store import SQLiteQueueStore
from podlink.platform import ForegroundState, NetworkState

START_TIME = 1_700_000_000_000


class _ManualHandle:
    def __init__(self, due, seq, callback):
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualClock:
    """Deterministic Clock: time only moves when a test calls advance()."""

    def __init__(self, start=START_TIME):
        self._now = start
        self._seq = 0
        self._handles: list[_ManualHandle] = []
        self.delays: list[int] = []

    def now(self):
        return self._now

    def set(self, now):
        self._now = now

    def call_later(self, delay_ms, callback):
        self._seq += 1
        handle = _ManualHandle(self._now + delay_ms, self._seq, callback)
        self._handles.append(handle)
        self.delays.append(delay_ms)
        return handle

    def pending(self):
        return [h for h in self._handles if not h.cancelled]

    def advance(self, ms):
        target = self._now + ms
        while True:
            due = [h for h in self.pending() if h.due <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.due, h.seq))
            self._handles.remove(handle)
            self._now = handle.due
            handle.callback()
        self._now = target


class ScriptedTransport(Transport):
    """Transport whose server side is driven by the test."""

    def __init__(self, url):
        self.url = url
        self.sent: list[str] = []
        self.closed = None
        self.fail_sends = False
        self._open = False
        self._handlers = None

    def open(self, on_open, on_message, on_close, on_error):
        self._handlers = (on_open, on_message, on_close, on_error)

    @property
    def is_open(self):
        return self._open and self.closed is None

    def send(self, text):
        if not self.is_open:
            raise TransportError("not open")
        if self.fail_sends:
            raise TransportError("socket buffer full")
        self.sent.append(text)

    def close(self, code=1000, reason=""):
        self.closed = (code, reason)
        self._open = False

    # -- server side --

    def accept(self):
        self._open = True
        self._handlers[0]()

    def deliver(self, raw):
        if not isinstance(raw, str):
            raw = json.dumps(raw)
        self._handlers[1](raw)

    def drop(self, code=1006, reason=""):
        self._open = False
        if self.closed is None:
            self.closed = (code, reason)
        self._handlers[2](code, reason)

    def fail(self, error):
        self._handlers[3](error)

    def messages(self):
        return [json.loads(text) for text in self.sent]


class TransportRecorder:
    """Transport factory that keeps every transport it builds."""

    def __init__(self):
        self.created: list[ScriptedTransport] = []
        self.error = None

    def __call__(self, url):
        if self.error is not None:
            raise self.error
        transport = ScriptedTransport(url)
        self.created.append(transport)
        return transport

    @property
    def last(self):
        return self.created[-1]


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def transports():
    return TransportRecorder()


@pytest.fixture
def visibility():
    return ForegroundState(visible=True)


@pytest.fixture
def network():
    return NetworkState(online=True)


@pytest.fixture
def make_manager(clock, transports, visibility, network):
    """Build a ConnectionManager wired to the fakes."""
    managers = []

    def factory(server_url="http://pod.local:3000", **options):
        manager = ConnectionManager(
            server_url,
            ConnectionOptions(**options),
            clock=clock,
            visibility=visibility,
            network=network,
            transport_factory=transports,
        )
        managers.append(manager)
        return manager

    yield factory

    for manager in managers:
        manager.destroy()


@pytest.fixture
def recorder():
    """Collect events from an emitter: recorder(emitter, *types) -> list."""

    def attach(emitter, *event_types):
        events = []
        for event_type in event_types:
            emitter.on(event_type, events.append)
        return events

    return attach


@pytest.fixture
def queue_store(tmp_path):
    store = SQLiteQueueStore(tmp_path / "queue.db")
    yield store
    store.close()


@pytest.fixture
def offline_queue(queue_store, clock):
    queue = OfflineQueue(queue_store, clock=clock, replay_delay=0)
    yield queue
    queue.close()
