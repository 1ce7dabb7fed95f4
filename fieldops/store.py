# fieldops/store.py
"""
Reads and writes against the project record store.

Captured records (daily logs, delay events, notices, time entries) are kept as
JSON payloads next to the few columns used for lookups. Writes are
last-write-wins; nothing here coordinates concurrent writers.
"""

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, update, insert, delete

from fieldops.database import (
    cost_codes_table,
    productivity_baselines_table,
    productivity_entries_table,
    productivity_analytics_table,
    daily_logs_table,
    delay_events_table,
    notice_logs_table,
    time_entries_table,
)
from fieldops.errors import RecordNotFoundError
from fieldops.models import (
    ApprovalStatus,
    CostCode,
    DailyLog,
    DelayEvent,
    NoticeLogEntry,
    PeriodType,
    ProductivityAnalytics,
    ProductivityBaseline,
    ProductivityEntry,
    TimeEntry,
)

logger = logging.getLogger(__name__)

APPROVED_STATUSES = (ApprovalStatus.APPROVED.value, ApprovalStatus.EXPORTED.value)


def _upsert(conn, table, values: dict):
    existing = conn.execute(
        select(table.c.id).where(table.c.id == values["id"])
    ).fetchone()
    if existing:
        conn.execute(update(table).where(table.c.id == values["id"]).values(**values))
    else:
        conn.execute(insert(table), values)


def _rows(engine, query) -> List[dict]:
    with engine.connect() as conn:
        rows = conn.execute(query).fetchall()
    return [dict(r._mapping) for r in rows]


# ── cost codes ──

def save_cost_code(engine, cost_code: CostCode):
    with engine.begin() as conn:
        _upsert(conn, cost_codes_table, cost_code.model_dump(mode="json"))


def fetch_cost_codes(engine, project_id: str, active_only: bool = True) -> List[CostCode]:
    query = select(cost_codes_table).where(cost_codes_table.c.project_id == project_id)
    if active_only:
        query = query.where(cost_codes_table.c.is_active.is_(True))
    query = query.order_by(cost_codes_table.c.code, cost_codes_table.c.id)
    return [CostCode.model_validate(r) for r in _rows(engine, query)]


def get_cost_code(engine, cost_code_id: str) -> Optional[CostCode]:
    rows = _rows(engine, select(cost_codes_table).where(cost_codes_table.c.id == cost_code_id))
    return CostCode.model_validate(rows[0]) if rows else None


# ── baselines ──

def fetch_active_baselines(engine, project_id: str) -> Dict[str, ProductivityBaseline]:
    """Active baseline per cost code id. Codes without one are absent from the dict."""
    rows = _rows(
        engine,
        select(productivity_baselines_table)
        .where(productivity_baselines_table.c.project_id == project_id)
        .where(productivity_baselines_table.c.is_active.is_(True))
        .order_by(productivity_baselines_table.c.id),
    )
    return {r["cost_code_id"]: ProductivityBaseline.model_validate(r) for r in rows}


def save_baseline(engine, baseline: ProductivityBaseline):
    """Store `baseline` as the only active baseline for its cost code."""
    with engine.begin() as conn:
        conn.execute(
            update(productivity_baselines_table)
            .where(productivity_baselines_table.c.project_id == baseline.project_id)
            .where(productivity_baselines_table.c.cost_code_id == baseline.cost_code_id)
            .where(productivity_baselines_table.c.is_active.is_(True))
            .values(is_active=False)
        )
        _upsert(conn, productivity_baselines_table, baseline.model_dump(mode="json"))


# ── productivity entries ──

def fetch_entries(engine, project_id: str, cost_code_id: str = None) -> List[ProductivityEntry]:
    query = select(productivity_entries_table).where(
        productivity_entries_table.c.project_id == project_id
    )
    if cost_code_id:
        query = query.where(productivity_entries_table.c.cost_code_id == cost_code_id)
    query = query.order_by(productivity_entries_table.c.date, productivity_entries_table.c.id)
    return [ProductivityEntry.model_validate(r) for r in _rows(engine, query)]


# ── analytics ──

def fetch_analytics(engine, project_id: str, period_type: PeriodType = None) -> List[ProductivityAnalytics]:
    query = select(productivity_analytics_table).where(
        productivity_analytics_table.c.project_id == project_id
    )
    if period_type:
        query = query.where(productivity_analytics_table.c.period_type == PeriodType(period_type).value)
    query = query.order_by(productivity_analytics_table.c.cost_code_id, productivity_analytics_table.c.period_type)
    return [ProductivityAnalytics.model_validate(r) for r in _rows(engine, query)]


# ── daily logs and delay events ──

def save_daily_log(engine, daily_log: DailyLog):
    """Upsert a daily log and the delay events embedded in it."""
    with engine.begin() as conn:
        _upsert(conn, daily_logs_table, {
            "id": daily_log.id,
            "project_id": daily_log.project_id,
            "date": daily_log.date.isoformat(),
            "payload": daily_log.model_dump(mode="json"),
        })
        # events removed from the log go with it
        conn.execute(
            delete(delay_events_table)
            .where(delay_events_table.c.daily_log_id == daily_log.id)
            .where(delay_events_table.c.id.notin_([e.id for e in daily_log.delay_events]))
        )
        for event in daily_log.delay_events:
            if not event.daily_log_id:
                event = event.model_copy(update={"daily_log_id": daily_log.id})
            _upsert(conn, delay_events_table, _delay_event_row(event))
    logger.debug("saved daily log %s with %d delay events", daily_log.id, len(daily_log.delay_events))


def get_daily_log(engine, daily_log_id: str) -> DailyLog:
    rows = _rows(engine, select(daily_logs_table).where(daily_logs_table.c.id == daily_log_id))
    if not rows:
        raise RecordNotFoundError("daily log", daily_log_id)
    return DailyLog.model_validate(rows[0]["payload"])


def fetch_daily_logs(engine, project_id: str, on_date: date = None) -> List[DailyLog]:
    query = select(daily_logs_table).where(daily_logs_table.c.project_id == project_id)
    if on_date:
        query = query.where(daily_logs_table.c.date == on_date.isoformat())
    query = query.order_by(daily_logs_table.c.date, daily_logs_table.c.id)
    return [DailyLog.model_validate(r["payload"]) for r in _rows(engine, query)]


def _delay_event_row(event: DelayEvent) -> dict:
    return {
        "id": event.id,
        "project_id": event.project_id,
        "daily_log_id": event.daily_log_id,
        "date": event.date.isoformat(),
        "payload": event.model_dump(mode="json"),
    }


def save_delay_event(engine, event: DelayEvent):
    with engine.begin() as conn:
        _upsert(conn, delay_events_table, _delay_event_row(event))


def fetch_delay_events(engine, project_id: str) -> List[DelayEvent]:
    query = (
        select(delay_events_table)
        .where(delay_events_table.c.project_id == project_id)
        .order_by(delay_events_table.c.date, delay_events_table.c.id)
    )
    return [DelayEvent.model_validate(r["payload"]) for r in _rows(engine, query)]


# ── notices ──

def save_notice(engine, notice: NoticeLogEntry):
    with engine.begin() as conn:
        _upsert(conn, notice_logs_table, {
            "id": notice.id,
            "project_id": notice.project_id,
            "notice_type": notice.notice_type,
            "date_sent": notice.date_sent.isoformat(),
            "payload": notice.model_dump(mode="json"),
        })


def fetch_notices(engine, project_id: str) -> List[NoticeLogEntry]:
    query = (
        select(notice_logs_table)
        .where(notice_logs_table.c.project_id == project_id)
        .order_by(notice_logs_table.c.date_sent, notice_logs_table.c.id)
    )
    return [NoticeLogEntry.model_validate(r["payload"]) for r in _rows(engine, query)]


# ── time entries ──

def _time_entry_row(entry: TimeEntry) -> dict:
    return {
        "id": entry.id,
        "project_id": entry.project_id,
        "date": entry.date.isoformat(),
        "worker_id": entry.worker_id,
        "cost_code_id": entry.cost_code_id,
        "approval_status": entry.approval_status.value,
        "payload": entry.model_dump(mode="json"),
    }


def save_time_entries(engine, entries: Iterable[TimeEntry]):
    with engine.begin() as conn:
        for entry in entries:
            _upsert(conn, time_entries_table, _time_entry_row(entry))


def fetch_time_entries(engine, project_id: str, on_date: date = None,
                       approved_only: bool = False) -> List[TimeEntry]:
    query = select(time_entries_table).where(time_entries_table.c.project_id == project_id)
    if on_date:
        query = query.where(time_entries_table.c.date == on_date.isoformat())
    if approved_only:
        query = query.where(time_entries_table.c.approval_status.in_(APPROVED_STATUSES))
    query = query.order_by(time_entries_table.c.date, time_entries_table.c.id)
    return [TimeEntry.model_validate(r["payload"]) for r in _rows(engine, query)]


def approve_time_entries(engine, project_id: str, entry_ids: Iterable[str]) -> List[date]:
    """
    Mark the given pending time entries approved.
    Returns the sorted distinct dates touched, one derivation per date is needed.
    """
    wanted = set(entry_ids)
    touched = set()
    with engine.begin() as conn:
        rows = conn.execute(
            select(time_entries_table)
            .where(time_entries_table.c.project_id == project_id)
            .where(time_entries_table.c.id.in_(wanted))
        ).fetchall()
        found = {r._mapping["id"] for r in rows}
        missing = wanted - found
        if missing:
            raise RecordNotFoundError("time entry", sorted(missing)[0])
        for r in rows:
            entry = TimeEntry.model_validate(r._mapping["payload"])
            if entry.approval_status != ApprovalStatus.PENDING:
                continue
            entry = entry.model_copy(update={"approval_status": ApprovalStatus.APPROVED})
            conn.execute(
                update(time_entries_table)
                .where(time_entries_table.c.id == entry.id)
                .values(approval_status=entry.approval_status.value,
                        payload=entry.model_dump(mode="json"))
            )
            touched.add(entry.date)
    return sorted(touched)


def delete_project_analytics(conn, project_id: str, cost_code_id: str, period_type: PeriodType):
    conn.execute(
        delete(productivity_analytics_table)
        .where(productivity_analytics_table.c.project_id == project_id)
        .where(productivity_analytics_table.c.cost_code_id == cost_code_id)
        .where(productivity_analytics_table.c.period_type == period_type.value)
    )
