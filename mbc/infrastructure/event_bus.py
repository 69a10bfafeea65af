import logging
import threading
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List, Optional, Type
from mbc.domain.events import Event

Callback = Callable[[Any], None]

logger = logging.getLogger(__name__)


class EventBus:
    """Synchronous publish/subscribe between the pipeline and its observers.

    Callbacks run on the publishing thread; job events are published from
    worker threads, so subscribers guard their own state. A subscription to a
    base class (e.g. `JobEvent`) receives every subclass event as well.

    A failing subscriber is logged and skipped; the publisher never sees its
    exception.
    """

    def __init__(self):
        self._subscribers: DefaultDict[Type[Event], List[Callback]] = defaultdict(list)
        self._lock = threading.RLock()

    def subscribe(self, event_type: Type[Event], callback: Optional[Callback] = None):
        """Subscribes a callback to an event type. Can be used as a decorator."""
        if callback is None:
            def decorator(func: Callback):
                self.subscribe(event_type, func)
                return func
            return decorator

        with self._lock:
            self._subscribers[event_type].append(callback)
        return callback

    def _callbacks_for(self, event: Event) -> List[Callback]:
        with self._lock:
            return [
                callback
                for klass in type(event).__mro__
                for callback in self._subscribers.get(klass, ())
            ]

    def publish(self, event: Event):
        """Delivers `event` to subscribers of its type and of its base classes."""
        for callback in self._callbacks_for(event):
            try:
                callback(event)
            except Exception:
                logger.exception(f"SUBSCRIBER_ERROR: {type(event).__name__} -> {callback!r}")
