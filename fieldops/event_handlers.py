import logging

from fieldops.analytics import recompute_analytics
from fieldops.errors import AnalyticsRefreshError
from fieldops.eventing import event_manager, Event, DAILY_LOG_SAVED, TIME_ENTRIES_APPROVED
from fieldops.productivity import derive_productivity_entries, derive_productivity_from_time_entries

logger = logging.getLogger(__name__)


def _refresh(event: Event, engine, project_id: str):
    try:
        recompute_analytics(engine, project_id)
    except AnalyticsRefreshError as exc:
        event.errors.append(str(exc))


def daily_log_saved_handler(event: Event):
    payload = event.payload
    engine = payload["engine"]
    daily_log = payload["daily_log"]
    project_id = payload.get("project_id") or daily_log.project_id

    result = derive_productivity_entries(engine, daily_log, project_id)
    payload["entries"] = result.entries
    event.warnings.extend(result.warnings)
    _refresh(event, engine, project_id)


def time_entries_approved_handler(event: Event):
    payload = event.payload
    engine = payload["engine"]
    project_id = payload["project_id"]

    entries = []
    for on_date in payload.get("dates", []):
        result = derive_productivity_from_time_entries(engine, project_id, on_date)
        entries.extend(result.entries)
        event.warnings.extend(result.warnings)
    payload["entries"] = entries
    _refresh(event, engine, project_id)


def register_handlers(manager=event_manager):
    manager.add_listener(DAILY_LOG_SAVED, daily_log_saved_handler)
    manager.add_listener(TIME_ENTRIES_APPROVED, time_entries_approved_handler)


# Register the handlers
register_handlers()
