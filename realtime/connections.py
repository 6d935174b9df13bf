# realtime/connections.py
"""
In-process publish/subscribe with explicit subscription handles.

The transport itself (websockets, push services) lives outside this
project; whatever carries events to a session subscribes here.
"""
import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from django.utils import timezone

DEFAULT_BUFFER_SIZE = 100

logger = logging.getLogger(__name__)


@dataclass
class Event:
    topic: str
    kind: str
    payload: Dict[str, Any]
    occurred_at: datetime = field(default_factory=timezone.now)


class CancellationToken:
    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self):
        return self._event.is_set()


class SubscriptionHandle:
    """
    One consumer on one topic.

    With a callback, events are pushed as they are published. Without one
    they queue in a bounded buffer until drain(); when the buffer is full
    the oldest event is dropped.
    """

    def __init__(self, topic, filter_spec=None, callback=None, buffer_size=DEFAULT_BUFFER_SIZE):
        self.id = uuid.uuid4().hex
        self.topic = topic
        self.filter_spec = dict(filter_spec or {})
        self.callback = callback
        self.token = CancellationToken()
        self.dropped = 0
        self._buffer = deque(maxlen=buffer_size)

    @property
    def cancelled(self):
        return self.token.cancelled

    def matches(self, event):
        """Coarse filter: every key in filter_spec must equal (or be in) the payload value"""
        for key, expected in self.filter_spec.items():
            value = event.payload.get(key)
            if isinstance(expected, (list, tuple, set, frozenset)):
                if value not in expected:
                    return False
            elif value != expected:
                return False
        return True

    def push(self, event):
        if self.callback is not None:
            self.callback(event)
            return
        if len(self._buffer) == self._buffer.maxlen:
            self.dropped += 1
        self._buffer.append(event)

    def drain(self):
        events = list(self._buffer)
        self._buffer.clear()
        return events

    def __repr__(self):
        return f"<SubscriptionHandle {self.topic} {self.id[:8]}{' cancelled' if self.cancelled else ''}>"


class ConnectionManager:
    """Registry of live subscriptions, owned by whoever creates it"""

    def __init__(self, buffer_size=DEFAULT_BUFFER_SIZE):
        self.buffer_size = buffer_size
        self._subscriptions: Dict[str, SubscriptionHandle] = {}
        self._lock = threading.RLock()

    def subscribe(self, topic, filter_spec=None, callback: Optional[Callable[[Event], Any]] = None):
        handle = SubscriptionHandle(topic, filter_spec, callback, buffer_size=self.buffer_size)
        with self._lock:
            self._subscriptions[handle.id] = handle
        logger.info("Subscribed %s to %s with filter %s", handle.id[:8], topic, handle.filter_spec)
        return handle

    def unsubscribe(self, handle):
        """
        Close a subscription. Safe to call twice, with None, or with a
        handle this manager never issued.

        Returns:
            True if a live subscription was closed
        """
        if handle is None:
            return False
        handle.token.cancel()
        with self._lock:
            removed = self._subscriptions.pop(handle.id, None)
        if removed is not None:
            logger.info("Unsubscribed %s from %s", handle.id[:8], handle.topic)
        return removed is not None

    def unsubscribe_all(self):
        with self._lock:
            handles = list(self._subscriptions.values())
            self._subscriptions.clear()
        for handle in handles:
            handle.token.cancel()
        return len(handles)

    def active_subscriptions(self, topic=None):
        with self._lock:
            handles = list(self._subscriptions.values())
        return [h for h in handles if topic is None or h.topic == topic]

    def publish(self, topic, event):
        """
        Deliver an event to every matching subscriber of a topic.
        A failing subscriber is logged and skipped.

        Returns:
            Number of subscribers the event reached
        """
        delivered = 0
        for handle in self.active_subscriptions(topic):
            if handle.cancelled or not handle.matches(event):
                continue
            try:
                handle.push(event)
            except Exception:
                logger.exception("Subscriber %s failed on %s event", handle.id[:8], topic)
                continue
            delivered += 1
        return delivered
