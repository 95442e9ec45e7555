import asyncio
from typing import Optional

from flowbot.logging_config import get_logger
from flowbot.services.conversation_state import ConversationStore
from flowbot.services.history_store import HistoryStore

logger = get_logger("pool_monitor")


class PoolMonitor:
    """Background task probing the history pool every ``interval_seconds``.

    Each tick also sweeps idle conversations out of ``conversations`` when one is given.
    ``nudge()`` wakes the loop early, e.g. right after a caller saw ``StoreUnavailable``.
    """

    def __init__(
        self,
        store: HistoryStore,
        interval_seconds: float = 60.0,
        conversations: Optional[ConversationStore] = None,
    ):
        self.store = store
        self.conversations = conversations
        self.interval_seconds = max(interval_seconds, 0.1)
        self.probes = 0
        self._task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info("Pool monitor started", extra={"context": {"interval_seconds": self.interval_seconds}})

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Pool monitor stopped")

    def nudge(self) -> None:
        if self._wake is not None:
            self._wake.set()

    async def probe_once(self) -> bool:
        self.probes += 1
        return await asyncio.to_thread(self.store.check_connection)

    def sweep(self) -> int:
        if self.conversations is None:
            return 0
        return self.conversations.purge_expired()

    async def _wait(self) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            pass
        self._wake.clear()

    async def _loop(self) -> None:
        while True:
            try:
                await self._wait()
                healthy = await self.probe_once()
                if not healthy:
                    logger.warning("History pool probe failed", extra={"context": {"recreations": self.store.recreations}})
                self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("Pool monitor loop failed", extra={"context": {"error": str(exc)}})
