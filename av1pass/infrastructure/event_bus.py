from typing import Type, Callable, List, Dict, Any, Optional
from av1pass.domain.events import Event

class EventBus:
    """A synchronous event bus.

    Subscribers to a base event class also receive its subclasses, so a
    listener on ``ItemEvent`` sees every per-file event.
    """

    def __init__(self):
        self._subscribers: Dict[Type[Event], List[Callable[[Any], None]]] = {}

    def subscribe(self, event_type: Type[Event], callback: Optional[Callable[[Any], None]] = None):
        """Subscribes a callback to an event type. Can be used as a decorator."""
        if callback is None:
            def decorator(func: Callable[[Any], None]):
                self.subscribe(event_type, func)
                return func
            return decorator

        self._subscribers.setdefault(event_type, []).append(callback)
        return callback

    def publish(self, event: Event):
        """Delivers the event to subscribers of its class and of every base class."""
        for event_type in type(event).__mro__:
            for callback in self._subscribers.get(event_type, ()):
                callback(event)
            if event_type is Event:
                break
