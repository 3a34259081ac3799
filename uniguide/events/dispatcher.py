"""
Event Dispatcher
Routes domain events to the handlers registered for their name
"""

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Type, Union

from pydantic import ValidationError

from ..logger import logger
from .schemas import DomainEvent

Handler = Callable[[DomainEvent], Awaitable[Any]]


class EventDispatcher:
    """
    Typed handler map keyed by event name

    Payloads are validated into the registered event model before handlers
    run. Invalid payloads and handler errors are logged and dropped; dispatch
    never raises.
    """

    def __init__(self):
        self._event_types: Dict[str, Type[DomainEvent]] = {}
        self._handlers: Dict[str, List[Handler]] = {}

    def register(self, event_type: Type[DomainEvent], handler: Handler) -> None:
        """
        Register a handler for an event type

        Args:
            event_type: Event model class (its name is the routing key)
            handler: Coroutine function receiving the validated event
        """
        self._event_types[event_type.name] = event_type
        self._handlers.setdefault(event_type.name, []).append(handler)
        logger.debug(f"Registered handler for {event_type.name}")

    def handlers_for(self, event_name: str) -> List[Handler]:
        return list(self._handlers.get(event_name, []))

    async def dispatch(self, event_name: str,
                       payload: Union[DomainEvent, Mapping[str, Any]]) -> int:
        """
        Deliver an event to its handlers

        Args:
            event_name: Routing key such as "ocr.created"
            payload: Event model or raw mapping

        Returns:
            int: Number of handlers that completed without error
        """
        event_type = self._event_types.get(event_name)
        if event_type is None:
            logger.warning(f"No handlers registered for event {event_name}")
            return 0

        if isinstance(payload, event_type):
            event = payload
        else:
            try:
                event = event_type.model_validate(payload)
            except ValidationError as e:
                logger.error(f"Dropping malformed {event_name} event: {str(e)}")
                return 0

        delivered = 0
        for handler in self._handlers[event_name]:
            try:
                await handler(event)
                delivered += 1
            except Exception as e:
                logger.error(f"Handler for {event_name} failed: {str(e)}")
        return delivered
