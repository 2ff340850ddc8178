"""Row-change feed.

Every committed write in ``crud`` ends up here as a full-row snapshot. Events
fan out to in-process subscribers (the ``/realtime`` WebSocket) and to any
configured webhook URLs.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List

import httpx
from sqlmodel import SQLModel

from .config import get_settings

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass(eq=False)
class Subscription:
    """A bounded queue of events for one listener.

    A listener that lets ``maxsize`` events pile up is marked ``lagging``, its
    backlog is discarded and it receives ``None`` as a final marker. The feed
    stops delivering to it from then on.
    """

    table: str | None = None
    loop: asyncio.AbstractEventLoop | None = None
    maxsize: int = 1000
    lagging: bool = False
    queue: asyncio.Queue = field(init=False)

    def __post_init__(self) -> None:
        # one spare slot for the closing marker
        self.queue = asyncio.Queue(maxsize=self.maxsize + 1)

    def deliver(self, event: dict) -> None:
        if self.lagging or (self.table and event["table"] != self.table):
            return
        if self.loop is not None and self.loop.is_running():
            self.loop.call_soon_threadsafe(self._offer, event)
        else:
            self._offer(event)

    def _offer(self, event: dict) -> None:
        if self.lagging:
            return
        if self.queue.qsize() < self.maxsize:
            self.queue.put_nowait(event)
            return
        self.lagging = True
        logger.warning(
            "Dropping change feed subscriber on %s: %d events unread",
            self.table or "all tables",
            self.queue.qsize(),
        )
        self.drain()
        self.queue.put_nowait(None)

    def drain(self) -> List[dict]:
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events


class ChangeFeed:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._seq = itertools.count(1)
        self._subscribers: list[Subscription] = []

    def subscribe(
        self,
        table: str | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        maxsize: int | None = None,
    ) -> Subscription:
        if maxsize is None:
            maxsize = get_settings().realtime_queue_size
        subscription = Subscription(table=table, loop=loop, maxsize=maxsize)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def publish(self, table: str, event_type: str, record: dict) -> dict:
        with self._lock:
            event = {
                "seq": next(self._seq),
                "table": table,
                "type": event_type,
                "record": record,
                "commit_timestamp": datetime.now(timezone.utc).isoformat(),
            }
            self._subscribers = [s for s in self._subscribers if not s.lagging]
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            subscription.deliver(event)
        return event


change_feed = ChangeFeed()


def _post_webhook(url: str, payload: dict) -> None:
    try:
        response = httpx.post(url, json=payload, timeout=5)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Failed to deliver change event %s to %s: %s", payload["seq"], url, exc)


def _forward(urls: Iterable[str], event: dict) -> None:
    for url in urls:
        _post_webhook(url, event)


def publish_record(table: str, event_type: str, record: dict) -> dict:
    event = change_feed.publish(table, event_type, record)
    logger.debug("change event %s %s on %s", event["seq"], event_type, table)
    _forward(get_settings().realtime_webhook_urls, event)
    return event


def snapshot(row: SQLModel) -> dict:
    return row.model_dump(mode="json")


def publish_change(row: SQLModel, event_type: str) -> dict:
    """Publish a snapshot of ``row`` after its write has been committed."""
    return publish_record(row.__tablename__, event_type, snapshot(row))
