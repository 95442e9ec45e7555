"""Boundary between the outside world and the flow engine.

Inbound messages and external triggers become engine turns; the turn's outbound
messages are persisted to the history log and then delivered through the transport.
Turns for one conversation are serialized, turns for different conversations run
concurrently. Persistence failures are logged and never hold back delivery.
"""

import asyncio
from typing import Any, Callable, Optional

from flowbot.logging_config import ConversationLogger, get_logger
from flowbot.services.blacklist import Blacklist
from flowbot.services.conversation_state import ConversationLocks
from flowbot.services.flow_engine import FlowEngine, InboundMessage, OutboundMessage, Turn
from flowbot.services.flow_graph import normalize_keyword
from flowbot.services.history_store import HistoryRecord, HistoryStore, StoreError, StoreUnavailable, serialize_ref
from flowbot.services.result import Result
from flowbot.services.transport import Transport, normalize_number

logger = get_logger("dispatch_bridge")


class UnknownTriggerError(Exception):
    def __init__(self, event_name: str):
        self.event_name = event_name
        super().__init__(f"No node registered for event '{event_name}'")


def build_history_records(turn: Turn) -> list[HistoryRecord]:
    """One record for the captured reply (if any), then one per outbound message."""
    records = []
    if turn.captured is not None:
        records.append(
            HistoryRecord(
                phone=turn.conversation_id,
                ref=turn.captured.ref,
                keyword=turn.captured.keyword,
                answer=turn.captured.body,
                ref_serialize=serialize_ref(turn.captured.ref),
                options={"direction": "inbound", "capture": True},
            )
        )
    for effect in turn.effects:
        records.append(
            HistoryRecord(
                phone=turn.conversation_id,
                ref=effect.ref,
                keyword=effect.keyword,
                answer=effect.text,
                ref_serialize=serialize_ref(effect.ref),
                options={
                    "direction": "outbound",
                    "capture": effect.capture,
                    "media": effect.media,
                    "delay": effect.delay_ms,
                },
            )
        )
    return records


class DispatchBridge:
    def __init__(
        self,
        engine: FlowEngine,
        store: HistoryStore,
        transport: Transport,
        blacklist: Optional[Blacklist] = None,
        locks: Optional[ConversationLocks] = None,
        on_store_unavailable: Optional[Callable[[], None]] = None,
    ):
        self.engine = engine
        self.store = store
        self.transport = transport
        self.blacklist = blacklist if blacklist is not None else Blacklist()
        self.locks = locks or ConversationLocks()
        self.on_store_unavailable = on_store_unavailable

    # Blacklist pass-through

    def add_to_blacklist(self, number: str) -> None:
        self.blacklist.add(number)

    def remove_from_blacklist(self, number: str) -> None:
        self.blacklist.remove(number)

    def is_blacklisted(self, number: str) -> bool:
        return self.blacklist.contains(number)

    # Turns

    async def handle_inbound(self, conversation_id: str, body: str, name: Optional[str] = None) -> list[OutboundMessage]:
        number = normalize_number(conversation_id)
        if self.blacklist.contains(number):
            logger.info(f"Dropped message from blacklisted {number}")
            return []

        message = InboundMessage(from_=number, body=body or "", name=name)
        async with self.locks.hold(number):
            if self.engine.conversations.get_resume(number) is not None:
                turn = self.engine.advance(number, message)
            else:
                node_id = self.engine.graph.resolve_keyword(message.body)
                if node_id is None:
                    logger.debug(f"No trigger matched for {number}")
                    return []
                turn = self.engine.start(number, node_id, message, keyword=normalize_keyword(message.body))
            return await self._finish(turn)

    async def handle_external_trigger(
        self, event_name: str, conversation_id: str, payload: Optional[dict[str, Any]] = None
    ) -> list[OutboundMessage]:
        """Run the node registered for ``event_name`` as if the subscriber had triggered it."""
        node_id = self.engine.graph.resolve_event(event_name)
        if node_id is None:
            raise UnknownTriggerError(event_name)

        number = normalize_number(conversation_id)
        if self.blacklist.contains(number):
            logger.info(f"Dropped {event_name} for blacklisted {number}")
            return []

        payload = dict(payload or {})
        message = InboundMessage(from_=number, body=event_name, name=payload.get("name"), payload=payload)
        async with self.locks.hold(number):
            turn = self.engine.start(number, node_id, message, keyword=event_name)
            return await self._finish(turn)

    async def send_direct(self, number: str, message: Optional[str], media: Optional[str] = None) -> bool:
        """Deliver a message outside any flow; nothing is persisted."""
        return await self.transport.send_message(normalize_number(number), message, media)

    async def _finish(self, turn: Turn) -> list[OutboundMessage]:
        log = ConversationLogger(logger, turn.conversation_id)
        log.info(
            f"Turn finished: {type(turn.outcome).__name__}",
            context={"effects": len(turn.effects), "trace": [type(o).__name__ for o in turn.trace]},
        )

        persisted = await self.persist_turn(turn)
        if not persisted.ok:
            log.warning(f"History write failed: {persisted.error}", context={"error_code": persisted.error_code})
            if persisted.error_code == "store_unavailable" and self.on_store_unavailable:
                self.on_store_unavailable()

        await self._deliver(turn.effects, log)
        return turn.effects

    async def persist_turn(self, turn: Turn) -> Result[int]:
        records = build_history_records(turn)
        if not records:
            return Result.success(0)
        return await asyncio.to_thread(self._append_all, records)

    def _append_all(self, records: list[HistoryRecord]) -> Result[int]:
        written = 0
        for record in records:
            try:
                self.store.append(record)
            except StoreUnavailable as e:
                return Result.failure(str(e), "store_unavailable")
            except StoreError as e:
                return Result.failure(str(e), "store_error")
            written += 1
        return Result.success(written)

    async def _deliver(self, effects: list[OutboundMessage], log: ConversationLogger) -> None:
        for effect in effects:
            sent = await self.transport.send_message(effect.to, effect.text, effect.media)
            if not sent:
                log.warning("Delivery failed", context={"ref": effect.ref})
