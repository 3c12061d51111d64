"""Realtime pub/sub harness for row-change notifications."""

import asyncio
import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, TypeAlias
from uuid import uuid4

from loguru import logger

from job_tracker.exceptions import HarnessNotConnected, ReconnectionFailed
from job_tracker.schema import EventType, RealtimeEvent

Callback: TypeAlias = Callable[[dict[str, Any]], Any]

WILDCARD = "*"


def parse_filter(raw: str | Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Decode a subscription filter; anything that is not a JSON object means no filter."""
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        return dict(raw)
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid realtime filter {raw!r} ({e}), subscribing without a filter")
        return None
    if not isinstance(decoded, dict):
        logger.warning(f"Realtime filter {raw!r} is not an object, subscribing without a filter")
        return None
    return decoded


@dataclass
class Subscription:
    id: str
    event: str
    schema: str
    table: str
    callback: Callback
    filter: dict[str, Any] | None = None

    def matches(self, event: RealtimeEvent) -> bool:
        if self.event != WILDCARD and self.event != event.event:
            return False
        if self.schema != event.schema_name:
            return False
        if self.table != WILDCARD and self.table != event.table:
            return False
        if self.filter:
            return all(event.payload.get(k) == v for k, v in self.filter.items())
        return True


class RealtimeHarness:
    """In-process stand-in for a realtime channel.

    Events are recorded and dispatched synchronously while connected. Anything
    simulated while disconnected is dropped for good: nothing is queued for
    redelivery after a reconnection.
    """

    def __init__(
        self,
        connect_delay: float = 0.1,
        reconnect_delay: float = 0.1,
        max_reconnect_attempts: int = 5,
    ):
        self.connect_delay = connect_delay
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_attempts = max_reconnect_attempts
        self.connected = False
        self.reconnect_attempts = 0
        self._subscriptions: dict[str, Subscription] = {}
        self._events: list[RealtimeEvent] = []

    # ── Connection ─────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        await asyncio.sleep(self.connect_delay)
        self.connected = True
        self.reconnect_attempts = 0
        logger.debug("Realtime harness connected")

    def disconnect(self) -> None:
        self.connected = False
        self._subscriptions.clear()
        self._events.clear()
        logger.debug("Realtime harness disconnected")

    def simulate_disconnection(self) -> None:
        """Drop the connection but keep subscriptions for a later reconnection."""
        self.connected = False
        logger.info("Simulated realtime connection loss")

    async def simulate_reconnection(self, succeed: bool = True) -> None:
        """
        Raises:
            ReconnectionFailed once max_reconnect_attempts failed attempts are used up
        """
        if self.reconnect_attempts >= self.max_reconnect_attempts:
            raise ReconnectionFailed(
                f"Max reconnection attempts exceeded ({self.max_reconnect_attempts})"
            )
        self.reconnect_attempts += 1
        await asyncio.sleep(self.reconnect_delay)
        if not succeed:
            logger.warning(f"Reconnection attempt {self.reconnect_attempts}/{self.max_reconnect_attempts} failed")
            return
        logger.info(f"Reconnected after {self.reconnect_attempts} attempt(s)")
        self.connected = True
        self.reconnect_attempts = 0

    # ── Subscriptions ──────────────────────────────────────────────────────────

    def subscribe(
        self,
        event: str,
        schema: str,
        table: str,
        callback: Callback,
        filter: str | Mapping[str, Any] | None = None,
    ) -> str:
        """Register *callback* for matching events and return the subscription id.

        *event* and *table* accept ``"*"``. *filter* is a JSON object (or a dict)
        of payload key/value pairs that must all match.

        Raises:
            HarnessNotConnected when called while disconnected
        """
        if not self.connected:
            raise HarnessNotConnected("Realtime harness is not connected")
        sub = Subscription(
            id=f"sub-{uuid4()}",
            event=event,
            schema=schema,
            table=table,
            callback=callback,
            filter=parse_filter(filter),
        )
        self._subscriptions[sub.id] = sub
        logger.debug(f"Subscribed {sub.id} to {event} on {schema}.{table}")
        return sub.id

    def unsubscribe(self, subscription_id: str) -> bool:
        removed = self._subscriptions.pop(subscription_id, None) is not None
        if removed:
            logger.debug(f"Unsubscribed {subscription_id}")
        return removed

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def active_subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions.values())

    def has_subscription(self, subscription_id: str) -> bool:
        return subscription_id in self._subscriptions

    # ── Events ─────────────────────────────────────────────────────────────────

    def simulate_event(self, event: Mapping[str, Any]) -> RealtimeEvent | None:
        """Record an event and dispatch it to every matching subscription in registration order.

        Returns the completed event, or None when it was dropped because the
        harness is disconnected.
        """
        if not self.connected:
            logger.warning(
                f"Dropping {event.get('event', EventType.INSERT)} event on "
                f"{event.get('table', 'applications')}: realtime harness is not connected"
            )
            return None

        full = RealtimeEvent.model_validate({
            "id": f"event-{uuid4()}",
            "event": EventType.INSERT,
            "schema": "public",
            "table": "applications",
            "commit_timestamp": datetime.now(UTC).isoformat(),
            "payload": {},
            **{k: v for k, v in event.items() if v is not None},
        })
        self._events.append(full)

        for sub in list(self._subscriptions.values()):
            if not sub.matches(full):
                continue
            try:
                sub.callback(dict(full.payload))
            except Exception:
                logger.exception(f"Realtime callback for {sub.id} failed")

        logger.debug(f"Realtime {full.event} on {full.schema_name}.{full.table}")
        return full

    def events(self) -> list[RealtimeEvent]:
        return list(self._events)

    @property
    def event_count(self) -> int:
        return len(self._events)

    def clear_events(self) -> None:
        self._events.clear()

    def has_event(self, event: str, schema: str, table: str) -> bool:
        return any(
            e.event == event and e.schema_name == schema and e.table == table
            for e in self._events
        )

    async def wait_for_event(self, event: str, timeout: float = 5.0) -> RealtimeEvent:
        """Return the first recorded event of this type, waiting for one if needed.

        Raises:
            TimeoutError if nothing arrives within *timeout* seconds
            HarnessNotConnected if it has to wait while disconnected
        """
        for recorded in self._events:
            if recorded.event == event:
                return recorded

        arrived: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        def on_event(_payload: dict[str, Any]) -> None:
            if not arrived.done():
                arrived.set_result(None)

        sub_id = self.subscribe(event, "public", WILDCARD, on_event)
        try:
            await asyncio.wait_for(arrived, timeout)
        except TimeoutError:
            raise TimeoutError(f"Timeout waiting for {event} event") from None
        finally:
            self.unsubscribe(sub_id)
        return next(e for e in reversed(self._events) if e.event == event)

    # ── Database change helpers ────────────────────────────────────────────────

    def simulate_database_insert(self, table: str, data: Mapping[str, Any]) -> RealtimeEvent | None:
        now = datetime.now(UTC).isoformat()
        payload = {"id": f"gen-{uuid4()}", "created_at": now, "updated_at": now, **data}
        return self.simulate_event({"event": EventType.INSERT, "table": table, "payload": payload})

    def simulate_database_update(
        self, table: str, record_id: str, data: Mapping[str, Any]
    ) -> RealtimeEvent | None:
        payload = {"id": record_id, "updated_at": datetime.now(UTC).isoformat(), **data}
        return self.simulate_event({"event": EventType.UPDATE, "table": table, "payload": payload})

    def simulate_database_delete(
        self, table: str, record_id: str, old_data: Mapping[str, Any] | None = None
    ) -> RealtimeEvent | None:
        payload = {"id": record_id, **(old_data or {})}
        return self.simulate_event({"event": EventType.DELETE, "table": table, "payload": payload})
