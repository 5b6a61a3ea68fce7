"""Buffer of pushed messages awaiting correlation."""

from __future__ import annotations

import asyncio
import logging

from hiveauth.lib.clock import Clock, now_ms
from hiveauth.protocol.messages import Command, ProtocolMessage

logger = logging.getLogger(__name__)

MessageKey = tuple[Command, "str | None"]


class PendingMessageStore:
    """
    Pushed messages indexed by (kind, correlation id).

    Expired entries are evicted lazily at the start of every query. A query
    that matches removes every entry sharing the matched (kind, correlation
    id), so re-delivered duplicates are coalesced into the one result.

    All methods are synchronous and must be called from the event loop
    thread; each query-and-remove therefore runs without interleaving with
    a push or with another query.
    """

    def __init__(self, clock: Clock = now_ms):
        self._clock = clock
        self._entries: dict[MessageKey, list[ProtocolMessage]] = {}
        # kind -> keys in first-arrival order, for lookups without a correlation id
        self._by_kind: dict[Command, dict[MessageKey, None]] = {}
        self._changed = asyncio.Event()

    def __len__(self) -> int:
        return sum(len(messages) for messages in self._entries.values())

    def push(self, message: ProtocolMessage) -> None:
        """Store a message and wake waiting flows."""
        key = (message.kind, message.correlation_id)
        if key in self._entries:
            self._entries[key].append(message)
        else:
            self._entries[key] = [message]
            self._by_kind.setdefault(message.kind, {})[key] = None

        logger.debug(f"Stored {message} ({len(self)} pending)")

        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    def query(
        self,
        kind: Command,
        correlation_id: str | None = None,
    ) -> ProtocolMessage | None:
        """
        Take the first live message matching kind and, if given, correlation_id.

        Args:
            kind: Message kind to match exactly.
            correlation_id: Correlation id to match exactly, or None for any.

        Returns:
            The earliest matching message, or None.
        """
        self.evict_expired()

        if correlation_id is not None:
            key: MessageKey | None = (kind, correlation_id)
            if key not in self._entries:
                return None
        else:
            key = next(iter(self._by_kind.get(kind, ())), None)
            if key is None:
                return None

        messages = self._remove(key)
        if len(messages) > 1:
            logger.debug(f"Coalesced {len(messages) - 1} duplicate(s) of {messages[0]}")
        return messages[0]

    def evict_expired(self) -> int:
        """
        Drop every message whose expiry has passed.

        Returns:
            Number of messages evicted.
        """
        now = self._clock()
        evicted = 0
        for key in list(self._entries):
            messages = self._entries[key]
            live = [m for m in messages if not m.is_expired(now)]
            if len(live) == len(messages):
                continue
            evicted += len(messages) - len(live)
            if live:
                self._entries[key] = live
            else:
                self._remove(key)

        if evicted:
            logger.debug(f"Evicted {evicted} expired message(s)")
        return evicted

    async def wait_for_push(self, timeout: float) -> bool:
        """
        Wait until a message is pushed or timeout seconds elapse.

        Returns:
            True if a push happened, False on timeout.
        """
        changed = self._changed
        try:
            await asyncio.wait_for(changed.wait(), timeout=max(timeout, 0))
            return True
        except asyncio.TimeoutError:
            return False

    def clear(self) -> None:
        """Drop everything."""
        self._entries.clear()
        self._by_kind.clear()

    def _remove(self, key: MessageKey) -> list[ProtocolMessage]:
        messages = self._entries.pop(key)
        keys = self._by_kind.get(key[0])
        if keys is not None:
            keys.pop(key, None)
            if not keys:
                del self._by_kind[key[0]]
        return messages
