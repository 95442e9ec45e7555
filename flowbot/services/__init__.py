from flowbot.services.conversation_state import ConversationLocks, ConversationStore, ResumePoint
from flowbot.services.dispatch_bridge import DispatchBridge
from flowbot.services.flow_engine import EngineError, FlowEngine, InboundMessage, OutboundMessage, Turn
from flowbot.services.flow_graph import ConfigError, DuplicateTriggerError, FlowGraph, FlowGraphBuilder
from flowbot.services.history_store import HistoryRecord, HistoryStore, StoreError, StoreMalformed, StoreUnavailable
