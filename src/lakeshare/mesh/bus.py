"""🚌 Mesh Event Bus - In-process transport between domain channels.

Each domain owns one channel. A channel:
- accepts events from its owner and from allow-listed principals only
  (anything else is dropped silently, as the real transport would)
- queues a delivery for every rule whose pattern matches
- forwards along the routing rules recorded in the trust registry

`put_event` returns once the event is accepted and routed; rule targets
run later, when the bus is drained. A workflow that emits an event
therefore finishes its step before any workflow reacting to the event
starts.
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from .events import EventPattern, MeshEvent
from .registry import TrustRegistry

logger = structlog.get_logger(__name__)

Target = Callable[[MeshEvent], Any]


@dataclass
class Rule:
    name: str
    pattern: EventPattern
    targets: list[Target] = field(default_factory=list)


@dataclass
class Delivery:
    """A queued call of one rule target with one event."""

    channel: str
    rule: str
    target: Target
    event: MeshEvent

    def run(self) -> None:
        self.target(self.event)


class EventChannel:
    """A named event channel owned by one domain."""

    def __init__(self, name: str, owner: str, bus: MeshEventBus):
        self.name = name
        self.owner = owner
        self.bus = bus
        self.rules: dict[str, Rule] = {}
        self.received: list[MeshEvent] = []
        self.dropped: list[MeshEvent] = []

    def put_rule(self, name: str, pattern: EventPattern, *targets: Target) -> Rule:
        """Create or replace the rule called `name`."""
        rule = Rule(name=name, pattern=pattern, targets=list(targets))
        self.rules[name] = rule
        return rule

    def accepts(self, event: MeshEvent) -> bool:
        return event.account == self.owner or self.bus.registry.is_allowed(
            self.name, event.account
        )

    def put_event(self, event: MeshEvent) -> bool:
        """Accept and route an event. Returns False when the event was dropped."""
        if not self.accepts(event):
            self.dropped.append(event)
            logger.debug(
                "event_dropped",
                channel=self.name,
                account=event.account,
                detail_type=event.detail_type,
            )
            return False

        self.received.append(event)

        for rule in list(self.rules.values()):
            if rule.pattern.matches(event):
                logger.info(
                    "event_routed",
                    channel=self.name,
                    rule=rule.name,
                    detail_type=event.detail_type,
                    event_id=event.event_id,
                )
                for target in rule.targets:
                    self.bus.enqueue(Delivery(self.name, rule.name, target, event))

        for route in self.bus.registry.list_routes(self.name):
            if EventPattern.from_dict(route.pattern).matches(event):
                logger.info(
                    "event_routed",
                    channel=self.name,
                    rule=route.name,
                    target_channel=route.target_channel,
                    event_id=event.event_id,
                )
                self.bus.put_event(route.target_channel, event)

        return True


class MeshEventBus:
    """All channels of a local mesh.

    Example:
        bus = MeshEventBus(TrustRegistry(":memory:"))
        channel = bus.create_channel("222_dataDomainEventBus", owner="222")
        channel.put_rule("Intake", EventPattern(detail_type=("222_createResourceLinks",)), launch)
        bus.put_event("222_dataDomainEventBus", event)
        bus.drain()  # launch(event) runs here
    """

    def __init__(self, registry: TrustRegistry):
        self.registry = registry
        self.channels: dict[str, EventChannel] = {}
        self._pending: deque[Delivery] = deque()
        self._lock = threading.Lock()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def enqueue(self, delivery: Delivery) -> None:
        with self._lock:
            self._pending.append(delivery)

    def drain(self) -> int:
        """Run queued deliveries, including any they queue, until none are left.

        Returns the number of deliveries run.
        """
        count = 0
        while True:
            with self._lock:
                if not self._pending:
                    return count
                delivery = self._pending.popleft()
            logger.debug(
                "event_delivered",
                channel=delivery.channel,
                rule=delivery.rule,
                event_id=delivery.event.event_id,
            )
            delivery.run()
            count += 1

    def create_channel(self, name: str, owner: str) -> EventChannel:
        channel = self.channels.get(name)
        if channel is None:
            channel = EventChannel(name, owner, self)
            self.channels[name] = channel
        return channel

    def channel(self, name: str) -> EventChannel | None:
        return self.channels.get(name)

    def put_event(self, channel_name: str, event: MeshEvent) -> bool:
        """Put an event on a channel; events for unknown channels are dropped."""
        channel = self.channels.get(channel_name)
        if channel is None:
            logger.debug("event_dropped", channel=channel_name, reason="unknown channel")
            return False
        return channel.put_event(event)


class ChannelPublisher:
    """EventPublisher that puts events on a bus channel as its owner."""

    def __init__(self, bus: MeshEventBus, channel: str, account: str, region: str):
        self.bus = bus
        self.channel = channel
        self.account = account
        self.region = region

    def put_event(self, source: str, detail_type: str, detail: dict[str, Any]) -> str:
        event = MeshEvent(
            source=source,
            detail_type=detail_type,
            detail=detail,
            account=self.account,
            region=self.region,
        )
        self.bus.put_event(self.channel, event)
        return event.event_id
