# fieldops/productivity.py
"""
Turns captured field data into productivity entries.

Two sources feed the same table: work-performed lines on a saved daily log,
and approved time entries for a date. Both derivations are best-effort: a
record-store failure is logged and reported back as a warning instead of
being raised, so the save that triggered it still stands.
"""

import logging
import uuid
from collections import defaultdict
from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, insert, delete
from sqlalchemy.exc import SQLAlchemyError

from fieldops import store
from fieldops.config import get_settings
from fieldops.database import productivity_entries_table
from fieldops.errors import InvalidBaselineError, RecordNotFoundError
from fieldops.models import (
    BaselineSource,
    CostCode,
    DailyLog,
    DerivationResult,
    EntrySource,
    ProductivityBaseline,
    ProductivityEntry,
    WorkPerformedEntry,
)
from fieldops.utils import require_date

logger = logging.getLogger(__name__)

MINIMUM_BASELINE_DATA_POINTS = 5


class CostCodeIndex:
    """Looks up a work line's cost code by id, then by (csi division, activity)."""

    def __init__(self, cost_codes: List[CostCode]):
        self.by_id = {cc.id: cc for cc in cost_codes}
        self.by_activity = {}
        for cc in cost_codes:
            self.by_activity.setdefault((cc.csi_division, cc.activity), cc)

    def resolve(self, line: WorkPerformedEntry) -> Optional[CostCode]:
        if line.cost_code_id and line.cost_code_id in self.by_id:
            return self.by_id[line.cost_code_id]
        return self.by_activity.get((line.csi_division, line.activity))


def manpower_hours(daily_log: DailyLog, default_hours: float) -> float:
    """Crew hours on the log: heads x hours worked, plus overtime hours."""
    total = 0.0
    for m in daily_log.manpower:
        hours = m.hours_worked if m.hours_worked is not None else default_hours
        total += m.head_count * hours + (m.overtime_hours or 0.0)
    return total


def attribute_labor_hours(daily_log: DailyLog, default_hours: float) -> List[Optional[float]]:
    """
    Labor hours for each work-performed line, in line order.

    - explicit ``crew_hours_worked`` is used as reported
    - otherwise ``crew_size`` x default hours per worker-day
    - otherwise an equal share of the manpower hours not claimed by the lines above

    Lines without quantity never receive a share. None means no hours could be attributed.
    """
    lines = daily_log.work_performed
    hours: List[Optional[float]] = [None] * len(lines)
    claimed = 0.0
    unclaimed = []

    for i, line in enumerate(lines):
        if line.crew_hours_worked and line.crew_hours_worked > 0:
            hours[i] = line.crew_hours_worked
            claimed += line.crew_hours_worked
        elif line.crew_size and line.crew_size > 0:
            hours[i] = line.crew_size * default_hours
            claimed += hours[i]
        elif line.quantity and line.quantity > 0:
            unclaimed.append(i)

    pool = manpower_hours(daily_log, default_hours) - claimed
    if unclaimed and pool > 0:
        share = pool / len(unclaimed)
        for i in unclaimed:
            hours[i] = share
    return hours


def _time_sourced_codes(conn, project_id: str, on_date: date) -> set:
    rows = conn.execute(
        select(productivity_entries_table.c.cost_code_id)
        .where(productivity_entries_table.c.project_id == project_id)
        .where(productivity_entries_table.c.date == on_date.isoformat())
        .where(productivity_entries_table.c.source == EntrySource.TIME_ENTRY.value)
    ).fetchall()
    return {r[0] for r in rows}


def derive_productivity_entries(engine, daily_log: DailyLog, project_id: str = None) -> DerivationResult:
    """
    Re-derive the productivity entries for one saved daily log.

    Entries previously derived from this log are removed first, so calling this
    again after the log is edited never duplicates. Lines without a positive
    quantity or attributable hours are skipped.
    """
    settings = get_settings()
    project_id = project_id or daily_log.project_id
    result = DerivationResult()

    try:
        index = CostCodeIndex(store.fetch_cost_codes(engine, project_id, active_only=False))
        attributed = attribute_labor_hours(daily_log, settings.hours_per_worker_day)
        overtime = any((m.overtime_hours or 0) > 0 for m in daily_log.manpower)
        crew_size = sum(m.head_count for m in daily_log.manpower) or None

        with engine.begin() as conn:
            conn.execute(
                delete(productivity_entries_table)
                .where(productivity_entries_table.c.daily_log_id == daily_log.id)
                .where(productivity_entries_table.c.source == EntrySource.DAILY_LOG.value)
            )
            superseded = _time_sourced_codes(conn, project_id, daily_log.date)

            for i, line in enumerate(daily_log.work_performed):
                labor_hours = attributed[i]
                if not line.quantity or line.quantity <= 0 or not labor_hours or labor_hours <= 0:
                    logger.debug("log %s line %d: no quantity or hours, skipped", daily_log.id, i)
                    continue

                cost_code = index.resolve(line)
                if cost_code is None:
                    result.warnings.append(
                        f"Line {i + 1} ({line.csi_division} {line.activity}) has no matching cost code"
                    )
                    continue
                if cost_code.id in superseded:
                    logger.info("log %s line %d: approved time already covers %s on %s",
                                daily_log.id, i, cost_code.code, daily_log.date)
                    continue

                entry = ProductivityEntry(
                    id=f"pe-{daily_log.id}-{i}",
                    project_id=project_id,
                    cost_code_id=cost_code.id,
                    date=daily_log.date,
                    quantity=line.quantity,
                    labor_hours=labor_hours,
                    computed_unit_rate=line.quantity / labor_hours,
                    source=EntrySource.DAILY_LOG,
                    daily_log_id=daily_log.id,
                    csi_division=line.csi_division,
                    activity=line.activity,
                    crew_size=line.crew_size or crew_size,
                    overtime_included=overtime,
                    rework_included=bool(line.notes and "rework" in line.notes.lower()),
                    notes=line.notes,
                )
                conn.execute(insert(productivity_entries_table), entry.model_dump(mode="json"))
                result.entries.append(entry)
    except SQLAlchemyError as exc:
        logger.exception("Deriving productivity entries for daily log %s failed", daily_log.id)
        result.entries = []
        result.warnings.append(f"Productivity entries were not derived for daily log {daily_log.id}: {exc}")
        return result

    if superseded:
        # time-sourced entries take their quantity from the date's logs
        rebuilt = derive_productivity_from_time_entries(engine, project_id, daily_log.date)
        result.entries.extend(rebuilt.entries)
        result.warnings.extend(rebuilt.warnings)

    logger.info("derived %d productivity entries from daily log %s", len(result.entries), daily_log.id)
    return result


def _quantities_by_cost_code(logs: List[DailyLog], index: CostCodeIndex) -> Dict[str, Tuple[float, List[str]]]:
    totals: Dict[str, float] = defaultdict(float)
    sources: Dict[str, List[str]] = defaultdict(list)
    for log in logs:
        for line in log.work_performed:
            if not line.quantity or line.quantity <= 0:
                continue
            cost_code = index.resolve(line)
            if cost_code is None:
                continue
            totals[cost_code.id] += line.quantity
            if log.id not in sources[cost_code.id]:
                sources[cost_code.id].append(log.id)
    return {code_id: (totals[code_id], sources[code_id]) for code_id in totals}


def derive_productivity_from_time_entries(engine, project_id: str, on_date) -> DerivationResult:
    """
    Rebuild the entries for one date from approved time entries.

    Approved hours for a cost code replace whatever the daily log attributed to
    it on that date; the installed quantity still comes from the date's daily
    logs. Cost codes with no reported quantity are skipped.
    """
    result = DerivationResult()
    try:
        on_date = require_date(on_date)
        time_entries = store.fetch_time_entries(engine, project_id, on_date, approved_only=True)
        if not time_entries:
            return result

        by_code = defaultdict(list)
        for te in time_entries:
            if not te.cost_code_id:
                logger.debug("time entry %s has no cost code, skipped", te.id)
                continue
            by_code[te.cost_code_id].append(te)

        index = CostCodeIndex(store.fetch_cost_codes(engine, project_id, active_only=False))
        quantities = _quantities_by_cost_code(store.fetch_daily_logs(engine, project_id, on_date), index)

        with engine.begin() as conn:
            for cost_code_id in sorted(by_code):
                entries = by_code[cost_code_id]
                pair = (
                    (productivity_entries_table.c.project_id == project_id)
                    & (productivity_entries_table.c.date == on_date.isoformat())
                    & (productivity_entries_table.c.cost_code_id == cost_code_id)
                )
                conn.execute(
                    delete(productivity_entries_table)
                    .where(pair)
                    .where(productivity_entries_table.c.source == EntrySource.TIME_ENTRY.value)
                )

                cost_code = index.by_id.get(cost_code_id)
                if cost_code is None:
                    result.warnings.append(f"Time entries reference unknown cost code {cost_code_id}")
                    continue
                labor_hours = sum(te.total_hours for te in entries)
                quantity, log_ids = quantities.get(cost_code_id, (0.0, []))
                if labor_hours <= 0 or quantity <= 0:
                    result.warnings.append(
                        f"No installed quantity reported for {cost_code.code} on {on_date}; approved hours not measured"
                        if labor_hours > 0 else f"No approved hours for {cost_code.code} on {on_date}"
                    )
                    continue

                conn.execute(
                    delete(productivity_entries_table)
                    .where(pair)
                    .where(productivity_entries_table.c.source == EntrySource.DAILY_LOG.value)
                )
                entry = ProductivityEntry(
                    id=f"pt-{project_id}-{on_date.isoformat()}-{cost_code_id}",
                    project_id=project_id,
                    cost_code_id=cost_code_id,
                    date=on_date,
                    quantity=quantity,
                    labor_hours=labor_hours,
                    computed_unit_rate=quantity / labor_hours,
                    source=EntrySource.TIME_ENTRY,
                    daily_log_id=log_ids[0] if len(log_ids) == 1 else None,
                    csi_division=cost_code.csi_division,
                    activity=cost_code.activity,
                    crew_size=len({te.worker_id for te in entries}),
                    overtime_included=any(te.overtime_hours + te.double_time_hours > 0 for te in entries),
                )
                conn.execute(insert(productivity_entries_table), entry.model_dump(mode="json"))
                result.entries.append(entry)
    except (SQLAlchemyError, ValueError) as exc:
        logger.exception("Deriving productivity from time entries for %s on %s failed", project_id, on_date)
        result.entries = []
        result.warnings.append(f"Productivity entries were not derived from time entries for {on_date}: {exc}")
        return result

    logger.info("derived %d productivity entries from time entries on %s", len(result.entries), on_date)
    return result


# ── baselines ──

def set_baseline(engine, project_id: str, cost_code_id: str, baseline_unit_rate: float,
                 source: BaselineSource = BaselineSource.BID_ESTIMATE) -> ProductivityBaseline:
    """Make `baseline_unit_rate` the active baseline for a cost code."""
    if baseline_unit_rate is None or baseline_unit_rate <= 0:
        raise InvalidBaselineError(f"Baseline unit rate must be positive, got {baseline_unit_rate}")
    cost_code = store.get_cost_code(engine, cost_code_id)
    if cost_code is None or cost_code.project_id != project_id:
        raise RecordNotFoundError("cost code", cost_code_id)

    baseline = ProductivityBaseline(
        id=f"pb-{uuid.uuid4().hex[:12]}",
        project_id=project_id,
        cost_code_id=cost_code_id,
        baseline_unit_rate=baseline_unit_rate,
        source=source,
    )
    store.save_baseline(engine, baseline)
    logger.info("baseline for %s set to %.4f (%s)", cost_code.code, baseline_unit_rate, source.value)
    return baseline


def _confidence(sample_size: int) -> float:
    if sample_size >= 20:
        return 0.95
    if sample_size >= 15:
        return 0.85
    if sample_size >= 10:
        return 0.75
    return 0.6


def establish_baseline(engine, project_id: str, cost_code_id: str, start, end) -> Optional[ProductivityBaseline]:
    """
    Set a baseline from an unimpacted stretch of measured work.
    Returns None when the window holds fewer than five entries.
    """
    start, end = require_date(start), require_date(end)
    entries = [
        e for e in store.fetch_entries(engine, project_id, cost_code_id)
        if start <= e.date <= end
    ]
    if len(entries) < MINIMUM_BASELINE_DATA_POINTS:
        logger.info("only %d entries for %s between %s and %s, no baseline", len(entries), cost_code_id, start, end)
        return None

    rate = sum(e.computed_unit_rate for e in entries) / len(entries)
    baseline = set_baseline(engine, project_id, cost_code_id, rate, BaselineSource.EARLY_PERIOD)
    baseline = baseline.model_copy(update={
        "period_start": start,
        "period_end": end,
        "sample_size": len(entries),
        "confidence": _confidence(len(entries)),
    })
    store.save_baseline(engine, baseline)
    return baseline
