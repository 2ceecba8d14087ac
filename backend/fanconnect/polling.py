# fanconnect/polling.py
"""
Scheduled refresh, decoupled from any UI.

Clients refresh on fixed intervals (messages 5s, conversation list 10s,
unread badge 30s by default). A watcher emits a "new data" callback and
performs the read-receipt side effect in the same tick, so staleness and
receipt latency are both bounded by one interval.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, Union

from fanconnect import config
from fanconnect.messaging import ConversationSummary, MessagingService
from fanconnect import models

logger = logging.getLogger(__name__)

Callback = Callable[[], Union[None, Awaitable[None]]]


class IntervalTask:
    """Runs callback every `interval` seconds until stopped. Errors are logged, not fatal."""

    def __init__(self, interval: float, callback: Callback, *, name: str = "poll") -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.callback = callback
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> None:
        if inspect.iscoroutinefunction(self.callback):
            await self.callback()
            return
        # sync ticks do blocking store I/O; run them off the event loop
        result = await asyncio.to_thread(self.callback)
        if asyncio.iscoroutine(result):
            await result

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s tick failed", self.name)
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._loop(), name=self.name)
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


class ConversationWatcher:
    """
    Pulls new messages for an open thread and marks them read in the same tick.

    created_at is stamped before commit, so a message can become visible
    after a later-stamped one was already delivered. Each tick re-reads
    `overlap` behind the cursor and skips ids it has already emitted.
    """

    def __init__(
        self,
        service: MessagingService,
        conversation_id: str,
        reader_id: str,
        on_messages: Callable[[list[models.DirectMessage]], None],
        interval: float = config.POLL_MESSAGES_SECONDS,
        overlap: float = config.POLL_OVERLAP_SECONDS,
        window_limit: int = config.POLL_WINDOW_LIMIT,
    ) -> None:
        self.service = service
        self.conversation_id = conversation_id
        self.reader_id = reader_id
        self.on_messages = on_messages
        self.overlap = timedelta(seconds=overlap)
        self.window_limit = window_limit
        self.cursor: Optional[datetime] = None
        self.seen: dict[str, datetime] = {}
        self.task = IntervalTask(interval, self.tick, name=f"conversation:{conversation_id}")

    def _fetch(self, after: Optional[datetime]) -> list[models.DirectMessage]:
        return self.service.get_messages(
            self.conversation_id, self.reader_id, limit=self.window_limit, after=after
        )

    def tick(self) -> None:
        since = None if self.cursor is None else self.cursor - self.overlap
        batch = self._fetch(since)
        fresh = [m for m in batch if m.id not in self.seen]
        if not fresh and len(batch) >= self.window_limit:
            # window is full of delivered rows; step past the cursor
            batch = self._fetch(self.cursor)
            fresh = [m for m in batch if m.id not in self.seen]

        if fresh:
            for m in fresh:
                self.seen[m.id] = m.created_at
            newest = max(m.created_at for m in fresh)
            if self.cursor is None or newest > self.cursor:
                self.cursor = newest
            horizon = self.cursor - self.overlap
            self.seen = {mid: at for mid, at in self.seen.items() if at > horizon}
            self.on_messages(fresh)

        if any(m.recipient_id == self.reader_id and m.read_at is None for m in batch):
            self.service.mark_conversation_as_read(self.conversation_id, self.reader_id)


class ConversationListWatcher:
    def __init__(
        self,
        service: MessagingService,
        user_id: str,
        on_update: Callable[[list[ConversationSummary]], None],
        interval: float = config.POLL_CONVERSATIONS_SECONDS,
    ) -> None:
        self.service = service
        self.user_id = user_id
        self.on_update = on_update
        self.task = IntervalTask(interval, self.tick, name=f"conversations:{user_id}")

    def tick(self) -> None:
        self.on_update(self.service.list_conversations(self.user_id))


class UnreadBadgeWatcher:
    """Emits the unread count only when it changes."""

    def __init__(
        self,
        service: MessagingService,
        user_id: str,
        on_count: Callable[[int], None],
        interval: float = config.POLL_UNREAD_SECONDS,
    ) -> None:
        self.service = service
        self.user_id = user_id
        self.on_count = on_count
        self.last: Optional[int] = None
        self.task = IntervalTask(interval, self.tick, name=f"unread:{user_id}")

    def tick(self) -> None:
        count = self.service.unread_count(self.user_id)
        if count != self.last:
            self.last = count
            self.on_count(count)
