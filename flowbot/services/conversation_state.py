"""In-memory per-conversation scratchpad, resume points and turn serialization.

Nothing here survives a restart: an unfinished flow simply resets to idle.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable, Optional

from flowbot.logging_config import get_logger

logger = get_logger("conversation_state")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ResumePoint:
    """Where a conversation continues on its next inbound message."""

    node_id: str
    step_index: int
    keyword: Optional[str] = None
    fallbacks: int = 0

    def with_fallback(self) -> "ResumePoint":
        return replace(self, fallbacks=self.fallbacks + 1)


@dataclass
class Conversation:
    conversation_id: str
    state: dict[str, Any] = field(default_factory=dict)
    resume: Optional[ResumePoint] = None
    last_activity: datetime = field(default_factory=_utcnow)


class ConversationStore:
    def __init__(self, ttl_seconds: int = 0, clock: Callable[[], datetime] = _utcnow):
        self._ttl = timedelta(seconds=ttl_seconds) if ttl_seconds and ttl_seconds > 0 else None
        self._clock = clock
        self._conversations: dict[str, Conversation] = {}

    def _is_expired(self, conversation: Conversation, now: datetime) -> bool:
        return self._ttl is not None and now - conversation.last_activity > self._ttl

    def _lookup(self, conversation_id: str) -> Optional[Conversation]:
        conversation = self._conversations.get(conversation_id)
        if conversation is not None and self._is_expired(conversation, self._clock()):
            logger.info(f"Conversation {conversation_id} expired, resetting to idle")
            del self._conversations[conversation_id]
            return None
        return conversation

    def _entry(self, conversation_id: str) -> Conversation:
        conversation = self._lookup(conversation_id)
        if conversation is None:
            conversation = Conversation(conversation_id=conversation_id, last_activity=self._clock())
            self._conversations[conversation_id] = conversation
        return conversation

    def touch(self, conversation_id: str) -> Conversation:
        """Create the conversation if unseen and bump its last activity."""
        conversation = self._entry(conversation_id)
        conversation.last_activity = self._clock()
        return conversation

    def get(self, conversation_id: str, key: str, default: Any = None) -> Any:
        conversation = self._lookup(conversation_id)
        if conversation is None:
            return default
        return conversation.state.get(key, default)

    def set(self, conversation_id: str, key: str, value: Any) -> None:
        self._entry(conversation_id).state[key] = value

    def update(self, conversation_id: str, values: dict[str, Any]) -> None:
        self._entry(conversation_id).state.update(values)

    def clear(self, conversation_id: str) -> None:
        conversation = self._lookup(conversation_id)
        if conversation is not None:
            conversation.state.clear()

    def snapshot(self, conversation_id: str) -> dict[str, Any]:
        conversation = self._lookup(conversation_id)
        return dict(conversation.state) if conversation else {}

    def replace(self, conversation_id: str, values: dict[str, Any]) -> None:
        self._entry(conversation_id).state = dict(values)

    def get_resume(self, conversation_id: str) -> Optional[ResumePoint]:
        conversation = self._lookup(conversation_id)
        return conversation.resume if conversation else None

    def set_resume(self, conversation_id: str, resume: ResumePoint) -> None:
        self._entry(conversation_id).resume = resume

    def clear_resume(self, conversation_id: str) -> None:
        conversation = self._lookup(conversation_id)
        if conversation is not None:
            conversation.resume = None

    def last_activity(self, conversation_id: str) -> Optional[datetime]:
        conversation = self._lookup(conversation_id)
        return conversation.last_activity if conversation else None

    def purge_expired(self) -> int:
        if self._ttl is None:
            return 0
        now = self._clock()
        expired = [cid for cid, conv in self._conversations.items() if self._is_expired(conv, now)]
        for conversation_id in expired:
            del self._conversations[conversation_id]
        if expired:
            logger.info(f"Purged {len(expired)} idle conversations")
        return len(expired)

    def __contains__(self, conversation_id: str) -> bool:
        return self._lookup(conversation_id) is not None

    def __len__(self) -> int:
        return len(self._conversations)


class ConversationLocks:
    """One asyncio.Lock per conversation id, dropped once no turn holds or awaits it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._users[conversation_id] = self._users.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[conversation_id] -= 1
            if self._users[conversation_id] == 0:
                del self._users[conversation_id]
                del self._locks[conversation_id]

    def is_locked(self, conversation_id: str) -> bool:
        lock = self._locks.get(conversation_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
