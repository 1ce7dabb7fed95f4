# fieldops/capture.py
"""Save hooks used by the capture screens: store the record, then fire the event."""

import logging
from typing import Iterable, List

from fieldops import store
from fieldops.eventing import event_manager, Event, DAILY_LOG_SAVED, TIME_ENTRIES_APPROVED
from fieldops.models import DailyLog

import fieldops.event_handlers  # noqa: F401  registers the listeners

logger = logging.getLogger(__name__)


def record_daily_log(engine, daily_log: DailyLog, manager=event_manager) -> Event:
    """
    Save a daily log and derive its productivity entries.
    The save is committed before derivation starts; derivation problems come
    back as event warnings/errors and never undo it.
    """
    store.save_daily_log(engine, daily_log)
    event = manager.emit(Event(DAILY_LOG_SAVED, {
        "engine": engine,
        "daily_log": daily_log,
        "project_id": daily_log.project_id,
    }))
    for warning in event.warnings:
        logger.warning("daily log %s: %s", daily_log.id, warning)
    return event


def approve_time(engine, project_id: str, entry_ids: Iterable[str], manager=event_manager) -> Event:
    dates: List = store.approve_time_entries(engine, project_id, entry_ids)
    event = manager.emit(Event(TIME_ENTRIES_APPROVED, {
        "engine": engine,
        "project_id": project_id,
        "dates": dates,
    }))
    for warning in event.warnings:
        logger.warning("time approval for %s: %s", project_id, warning)
    return event
