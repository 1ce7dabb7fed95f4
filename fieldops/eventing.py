import logging

logger = logging.getLogger(__name__)

DAILY_LOG_SAVED = "daily_log_saved"
TIME_ENTRIES_APPROVED = "time_entries_approved"


class Event:
    def __init__(self, event_type: str, payload: dict = None):
        self.event_type = event_type
        self.payload = payload or {}
        self.warnings = []
        self.errors = []


class EventManager:
    def __init__(self):
        self.listeners = {}

    def add_listener(self, event_type: str, listener):
        if event_type not in self.listeners:
            self.listeners[event_type] = []
        if listener not in self.listeners[event_type]:
            self.listeners[event_type].append(listener)

    def remove_listener(self, event_type: str, listener):
        if event_type in self.listeners and listener in self.listeners[event_type]:
            self.listeners[event_type].remove(listener)

    def emit(self, event: Event) -> Event:
        # the record that raised the event is already saved, so a failing
        # listener is recorded on the event instead of propagating
        for listener in self.listeners.get(event.event_type, []):
            try:
                listener(event)
            except Exception as exc:
                logger.exception("listener %s failed for %s", getattr(listener, "__name__", listener), event.event_type)
                event.errors.append(str(exc))
        return event


# Global event manager instance shared by the API and the CLI.
event_manager = EventManager()
