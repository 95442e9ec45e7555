from unittest.mock import Mock

import pytest

from flowbot.flows import build_graph
from flowbot.services.conversation_state import ConversationStore
from flowbot.services.dispatch_bridge import DispatchBridge
from flowbot.services.flow_engine import FlowEngine
from flowbot.services.history_store import HistoryStore


class FakeTransport:
    """Records deliveries instead of calling the WhatsApp gateway."""

    def __init__(self, ok: bool = True):
        self.ok = ok
        self.sent = []
        self.closed = False

    async def send_message(self, number, text, media=None):
        self.sent.append((number, text, media))
        return self.ok

    async def close(self):
        self.closed = True

    @property
    def texts(self):
        return [text for _, text, _ in self.sent]


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'history.db'}"


@pytest.fixture
def store(db_url):
    history = HistoryStore(db_url)
    history.ensure_schema()
    yield history
    history.dispose()


@pytest.fixture
def graph():
    return build_graph("assets/sample.png")


@pytest.fixture
def conversations():
    return ConversationStore()


@pytest.fixture
def engine(graph, conversations):
    return FlowEngine(graph, conversations)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def on_store_unavailable():
    return Mock()


@pytest.fixture
def bridge(engine, store, transport, on_store_unavailable):
    return DispatchBridge(engine, store, transport, on_store_unavailable=on_store_unavailable)
