"""Component wiring shared by the app lifespan and the route dependencies."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from flowbot.config import Settings
from flowbot.flows import build_graph
from flowbot.services.blacklist import Blacklist
from flowbot.services.conversation_state import ConversationStore
from flowbot.services.dispatch_bridge import DispatchBridge
from flowbot.services.flow_engine import FlowEngine
from flowbot.services.flow_graph import FlowGraph
from flowbot.services.history_store import HistoryStore
from flowbot.services.pool_monitor import PoolMonitor
from flowbot.services.transport import ChatflowTransport, Transport


@dataclass
class Runtime:
    settings: Settings
    graph: FlowGraph
    conversations: ConversationStore
    engine: FlowEngine
    store: HistoryStore
    transport: Transport
    blacklist: Blacklist
    monitor: PoolMonitor
    bridge: DispatchBridge


def build_store(settings: Settings) -> HistoryStore:
    return HistoryStore(
        settings.db_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=settings.db_pool_pre_ping,
        echo=settings.debug,
    )


def build_transport(settings: Settings) -> ChatflowTransport:
    return ChatflowTransport(
        settings.chatflow_token,
        settings.chatflow_instance_id,
        api_url=settings.chatflow_api_url,
        media_base_url=settings.chatflow_media_base_url,
        public_base_url=settings.public_base_url,
        timeout=settings.transport_timeout_seconds,
    )


def build_runtime(
    settings: Settings,
    *,
    graph: Optional[FlowGraph] = None,
    store: Optional[HistoryStore] = None,
    transport: Optional[Transport] = None,
) -> Runtime:
    """Build every component. A ConfigError from the graph aborts startup."""
    graph = graph or build_graph(settings.samples_local_media_path)
    conversations = ConversationStore(ttl_seconds=settings.conversation_ttl_seconds)
    engine = FlowEngine(
        graph,
        conversations,
        max_fallbacks=settings.flow_max_fallbacks,
        max_jumps=settings.flow_max_jumps_per_turn,
    )
    store = store or build_store(settings)
    transport = transport or build_transport(settings)
    blacklist = Blacklist()
    monitor = PoolMonitor(store, interval_seconds=settings.db_health_interval_seconds, conversations=conversations)
    bridge = DispatchBridge(engine, store, transport, blacklist, on_store_unavailable=monitor.nudge)
    return Runtime(
        settings=settings,
        graph=graph,
        conversations=conversations,
        engine=engine,
        store=store,
        transport=transport,
        blacklist=blacklist,
        monitor=monitor,
        bridge=bridge,
    )


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def get_bridge(request: Request) -> DispatchBridge:
    return request.app.state.runtime.bridge
