# app/core/realtime.py
import asyncio
import itertools
import logging
import threading
from typing import Any, Callable

from fastapi import WebSocket
from fastapi.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

Fetch = Callable[[], Any]
Callback = Callable[[Any], None]


class ChangeFeed:
    """
    In-process change notification hub.

    Semantics: "whole snapshot on change".
      - subscribe() pushes the current result set right away.
      - every publish(topic) re-runs each subscriber's fetch and pushes the
        full result set again (no diffing).
      - subscriptions live until the caller invokes the returned
        unsubscribe function.

    A subscriber whose fetch or callback raises is logged and dropped.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subscribers: dict[str, dict[int, tuple[Fetch, Callback]]] = {}

    def subscribe(self, topic: str, fetch: Fetch, callback: Callback) -> Callable[[], None]:
        sub_id = next(self._ids)
        with self._lock:
            self._subscribers.setdefault(topic, {})[sub_id] = (fetch, callback)

        self._deliver(topic, sub_id, fetch, callback)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.get(topic, {}).pop(sub_id, None)

        return unsubscribe

    def publish(self, topic: str) -> None:
        with self._lock:
            targets = list(self._subscribers.get(topic, {}).items())
        for sub_id, (fetch, callback) in targets:
            self._deliver(topic, sub_id, fetch, callback)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, {}))

    def _deliver(self, topic: str, sub_id: int, fetch: Fetch, callback: Callback) -> None:
        try:
            callback(fetch())
        except Exception:
            logger.exception("Dropping %s subscriber %d after delivery failure", topic, sub_id)
            with self._lock:
                self._subscribers.get(topic, {}).pop(sub_id, None)


# Process-wide feed shared by services and websocket routes
change_feed = ChangeFeed()


async def stream_to_websocket(
    websocket: WebSocket,
    subscribe: Callable[[Callback], Callable[[], None]],
) -> None:
    """
    Bridge a ChangeFeed subscription to an accepted WebSocket.

    Snapshots may be published from worker threads (sync routes), so they
    are handed to the event loop through call_soon_threadsafe. The first
    snapshot is fetched in the threadpool so the sync DB query does not
    block the loop. The subscription is cancelled as soon as the client
    goes away.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def push(snapshot: Any) -> None:
        payload = [item.model_dump(mode="json") for item in snapshot]
        loop.call_soon_threadsafe(queue.put_nowait, payload)

    async def sender() -> None:
        while True:
            await websocket.send_json(await queue.get())

    async def receiver() -> None:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    unsubscribe = await run_in_threadpool(subscribe, push)
    tasks = [asyncio.create_task(sender()), asyncio.create_task(receiver())]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.warning("Snapshot stream closed: %r", task.exception())
    finally:
        unsubscribe()
        for task in tasks:
            task.cancel()
