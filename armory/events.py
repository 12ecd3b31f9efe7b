# armory/events.py
"""
Observability sink for the armory.
Components emit named events with keyword fields; every event is logged and
then handed to any subscribed listeners, such as a debug overlay.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Set

import config

log = logging.getLogger(__name__)

# Listeners receive the event name and its fields.
EventListener = Callable[[str, Dict[str, Any]], None]

# Events that indicate something went wrong are logged louder.
WARNING_EVENTS = {
    "catalog.attempt_failed",
    "catalog.unavailable",
    "persistence.failed",
}


class EventBus:
    """Fans structured events out to the log and to subscribed listeners."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._listeners: Set[EventListener] = set()
        self._log = logger or log

    def subscribe(self, listener: EventListener):
        """Subscribe a callable to receive every emitted event."""
        if not callable(listener):
            log.error("Event subscription failed: %r is not callable.", listener)
            return
        self._listeners.add(listener)
        log.debug("Listener %s subscribed to events.", getattr(listener, "__name__", listener))

    def unsubscribe(self, listener: EventListener):
        self._listeners.discard(listener)

    def emit(self, event: str, **fields: Any):
        level = logging.WARNING if event in WARNING_EVENTS else logging.INFO
        if fields:
            details = " ".join(f"{key}={value!r}" for key, value in fields.items())
            self._log.log(level, "%s %s", event, details)
        else:
            self._log.log(level, "%s", event)

        # Copy the set in case a listener unsubscribes itself
        for listener in list(self._listeners):
            try:
                listener(event, dict(fields))
            except Exception:
                # A broken listener must not stop the others or the caller.
                log.exception("Event listener %r failed on '%s'.", listener, event)


def configure_logging(settings: "config.Settings" = config.settings):
    """Sets up root logging with a file handler and a console handler."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.insert(0, logging.FileHandler(settings.log_file))
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=config.LOG_FORMAT,
        handlers=handlers,
    )
