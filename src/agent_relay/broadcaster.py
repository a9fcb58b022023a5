from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from agent_relay.messages import Message

DEFAULT_CLIENT_TIMEOUT_SECONDS = 300.0
DEFAULT_CLEANUP_INTERVAL_SECONDS = 60.0


@runtime_checkable
class Subscriber(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def last_activity_time(self) -> float: ...

    def send(self, event: str, data: Any) -> None: ...
    def close(self) -> None: ...
    def is_closed(self) -> bool: ...


class Broadcaster:
    """Fans session events out to every live subscriber.

    Delivery iterates a snapshot of the subscriber table, so a failed send
    can unsubscribe its subscriber without disturbing the loop.
    """

    def __init__(
        self,
        *,
        client_timeout_seconds: float = DEFAULT_CLIENT_TIMEOUT_SECONDS,
        cleanup_interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
    ):
        self._client_timeout_seconds = client_timeout_seconds
        self._cleanup_interval_seconds = max(0.01, cleanup_interval_seconds)
        self._subscribers: dict[str, Subscriber] = {}
        self._sweep_task: asyncio.Task | None = None

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers[subscriber.id] = subscriber
        logger.info(f"Client {subscriber.id} subscribed (total: {len(self._subscribers)})")
        if not self.sweep_running:
            self._start_sweep()

    def unsubscribe(self, subscriber_id: str) -> None:
        if self._subscribers.pop(subscriber_id, None) is not None:
            logger.info(f"Client {subscriber_id} unsubscribed (total: {len(self._subscribers)})")
        if not self._subscribers:
            self._stop_sweep()

    def get_subscriber_count(self) -> int:
        return len(self._subscribers)

    def broadcast(self, event: str, data: Any) -> None:
        snapshot = list(self._subscribers.values())
        logger.debug(f"Broadcasting event '{event}' to {len(snapshot)} clients")
        for subscriber in snapshot:
            try:
                subscriber.send(event, data)
            except Exception as ex:
                logger.error(f"Error sending to client {subscriber.id}: {ex}")
                self.unsubscribe(subscriber.id)

    def broadcast_message_update(self, message: Message) -> None:
        self.broadcast("message_update", message.to_dict())

    def broadcast_status_change(self, status: str) -> None:
        self.broadcast("status_change", {"status": status})

    def send_initial_state(self, subscriber: Subscriber, messages: list[Message], status: str) -> None:
        subscriber.send("init", {"messages": [m.to_dict() for m in messages], "status": status})

    def sweep_stale(self) -> list[str]:
        """Evict subscribers that went quiet past the timeout or report themselves closed."""
        now = time.monotonic()
        stale: list[str] = []
        for subscriber_id, subscriber in list(self._subscribers.items()):
            try:
                expired = (
                    subscriber.is_closed()
                    or now - subscriber.last_activity_time > self._client_timeout_seconds
                )
            except Exception as ex:
                logger.error(f"Error checking client {subscriber_id}: {ex}")
                expired = True
            if expired:
                stale.append(subscriber_id)

        if stale:
            logger.info(f"Cleaning up {len(stale)} stale client(s)")
            for subscriber_id in stale:
                subscriber = self._subscribers.get(subscriber_id)
                if subscriber is not None:
                    try:
                        subscriber.close()
                    except Exception as ex:
                        logger.error(f"Error closing client {subscriber_id}: {ex}")
                self.unsubscribe(subscriber_id)
        return stale

    def _start_sweep(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; stale-client sweep not started")
            return
        self._sweep_task = loop.create_task(self._sweep_loop())
        logger.info(
            f"Started client cleanup sweep (interval: {self._cleanup_interval_seconds}s, "
            f"timeout: {self._client_timeout_seconds}s)"
        )

    def _stop_sweep(self) -> None:
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        self._sweep_task = None
        logger.info("Stopped client cleanup sweep (no subscribers)")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval_seconds)
            try:
                self.sweep_stale()
            except Exception as ex:
                logger.error(f"Client cleanup sweep failed: {ex}")

    @property
    def sweep_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def close(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._subscribers.clear()
        logger.info("Broadcaster closed")
