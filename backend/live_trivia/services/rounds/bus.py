"""Change notifications for the round state and the answer ledger.

Two channels exist: ``round_state`` (one logical key, the singleton round)
and ``answers`` (keyed by question id). Each publish is fanned out to
in-process subscriptions and to the matching Socket.IO room on ``/ws``.
Delivery is best-effort and at-least-once; consumers deduplicate.
"""

import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from live_trivia import socketio

ROUND_CHANNEL = 'round_state'
ANSWERS_CHANNEL = 'answers'
SOCKET_NAMESPACE = '/ws'

SOCKET_EVENTS = {
    ROUND_CHANNEL: 'round_state',
    ANSWERS_CHANNEL: 'answer_inserted',
}


@dataclass(frozen=True)
class ChangeEvent:
    channel: str
    key: Optional[int]
    payload: Dict[str, Any] = field(default_factory=dict)


def room_for(channel: str, key: Optional[int] = None) -> str:
    if channel == ROUND_CHANNEL:
        return 'round'
    return f"answers:{key}"


class Subscription:
    """One observer's interest in a channel, optionally narrowed to a key.

    Events land in ``inbox``; several subscriptions may share one inbox so a
    client can consume everything it listens to from a single queue.
    """

    def __init__(self, bus: 'ChangeBus', channel: str, key: Optional[int], inbox: 'queue.Queue[ChangeEvent]'):
        self.bus = bus
        self.channel = channel
        self.key = key
        self.inbox = inbox
        self.active = True

    def matches(self, channel: str, key: Optional[int]) -> bool:
        return self.active and channel == self.channel and (self.key is None or self.key == key)

    def deliver(self, event: ChangeEvent) -> None:
        self.inbox.put(event)

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self.bus.unsubscribe(self)

    def __enter__(self) -> 'Subscription':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cancel()


class ChangeBus:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []

    def subscribe(self, channel: str, key: Optional[int] = None, inbox=None) -> Subscription:
        if channel not in SOCKET_EVENTS:
            raise ValueError(f"unknown channel {channel!r}")
        sub = Subscription(self, channel, key, inbox if inbox is not None else queue.Queue())
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def publish(self, channel: str, key: Optional[int], payload: Dict[str, Any]) -> ChangeEvent:
        event = ChangeEvent(channel=channel, key=key, payload=dict(payload))
        with self._lock:
            targets = [s for s in self._subscriptions if s.matches(channel, key)]
        for sub in targets:
            sub.deliver(event)
        socketio.emit(SOCKET_EVENTS[channel], event.payload, to=room_for(channel, key), namespace=SOCKET_NAMESPACE)
        return event

    def subscriber_count(self, channel: Optional[str] = None) -> int:
        with self._lock:
            return sum(1 for s in self._subscriptions if channel is None or s.channel == channel)

    def reset(self) -> None:
        with self._lock:
            for sub in self._subscriptions:
                sub.active = False
            self._subscriptions.clear()


bus = ChangeBus()
