from typing import Type, Callable, List, Dict, Any, Optional
from strmthumb.domain.events import Event

class EventBus:
    """A simple synchronous event bus for decoupled communication.

    Subscribers registered for a base class also receive events of its
    subclasses, so subscribing to ``Event`` observes the whole stream.
    """

    def __init__(self):
        self._subscribers: Dict[Type[Event], List[Callable[[Any], None]]] = {}

    def subscribe(self, event_type: Type[Event], callback: Optional[Callable[[Any], None]] = None):
        """Subscribes a callback to a specific event type. Can be used as a decorator."""
        if callback is None:
            def decorator(func: Callable[[Any], None]):
                self.subscribe(event_type, func)
                return func
            return decorator

        self._subscribers.setdefault(event_type, []).append(callback)
        return callback

    def unsubscribe(self, event_type: Type[Event], callback: Callable[[Any], None]) -> bool:
        callbacks = self._subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)
            return True
        return False

    def publish(self, event: Event):
        """Publishes an event to all interested subscribers, most specific type first."""
        for event_type in type(event).__mro__:
            for callback in list(self._subscribers.get(event_type, ())):
                callback(event)
