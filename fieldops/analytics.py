# fieldops/analytics.py
"""
Per cost code statistics over productivity entries.

``recompute_analytics`` replaces the stored analytics rows for a project. It
holds no state of its own: running it twice over the same entries writes the
same rows.
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from sqlalchemy import insert
from sqlalchemy.exc import SQLAlchemyError

from fieldops import store
from fieldops.config import get_settings
from fieldops.database import productivity_analytics_table
from fieldops.errors import AnalyticsRefreshError
from fieldops.models import PeriodType, ProductivityAnalytics, ProductivityEntry, TrendDirection
from fieldops.utils import window_start

logger = logging.getLogger(__name__)

PERIOD_DAYS = {
    PeriodType.DAILY: 1,
    PeriodType.WEEKLY: 7,
    PeriodType.MONTHLY: 30,
}


def unit_rate_statistics(rates: Sequence[float]) -> Dict[str, float]:
    """Peak, mean, low and sample standard deviation (0 for a single rate)."""
    arr = np.asarray(rates, dtype=float)
    return {
        "peak": float(arr.max()),
        "average": float(arr.mean()),
        "low": float(arr.min()),
        "std": float(arr.std(ddof=1)) if arr.size > 1 else 0.0,
    }


def classify_trend(rates: Sequence[float], window: int = 5, band: float = 0.03) -> Tuple[TrendDirection, float]:
    """
    Compare the mean of the last `window` rates with the mean of the `window`
    rates before them. Changes within +/- `band` are stable. Returns the
    direction and the absolute change in percent.
    """
    if len(rates) <= window:
        return TrendDirection.STABLE, 0.0
    recent = rates[-window:]
    prior = rates[-2 * window:-window]
    prior_avg = float(np.mean(prior))
    if prior_avg <= 0:
        return TrendDirection.STABLE, 0.0

    change = (float(np.mean(recent)) - prior_avg) / prior_avg
    if change > band:
        direction = TrendDirection.IMPROVING
    elif change < -band:
        direction = TrendDirection.DECLINING
    else:
        direction = TrendDirection.STABLE
    return direction, abs(change) * 100.0


def entries_in_period(entries: Iterable[ProductivityEntry], period_type: PeriodType,
                      as_of: date) -> List[ProductivityEntry]:
    period_type = PeriodType(period_type)
    if period_type == PeriodType.PROJECT_TO_DATE:
        return [e for e in entries if e.date <= as_of]
    start = window_start(as_of, PERIOD_DAYS[period_type])
    return [e for e in entries if start <= e.date <= as_of]


def compute_cost_code_analytics(
    project_id: str,
    cost_code_id: str,
    entries: Sequence[ProductivityEntry],
    period_type: PeriodType,
    baseline_rate: Optional[float],
    labor_rate: float,
    trend_window: int = 5,
    trend_band: float = 0.03,
) -> Optional[ProductivityAnalytics]:
    """
    Statistics for one cost code's entries (already windowed, in date order).

    Baseline-relative fields are None when there is no baseline rate.
    Cost variance is positive when under budget; schedule variance is in
    work days and negative when ahead of plan.
    """
    if not entries:
        return None

    rates = [e.computed_unit_rate for e in entries]
    stats = unit_rate_statistics(rates)
    trend, magnitude = classify_trend(rates, trend_window, trend_band)

    total_hours = float(sum(e.labor_hours for e in entries))
    total_quantity = float(sum(e.quantity for e in entries))
    work_days = len({e.date for e in entries})

    cost_variance = schedule_variance = planned_vs_actual = None
    if baseline_rate is not None and baseline_rate > 0:
        average = stats["average"]
        planned_hours = total_quantity / baseline_rate
        cost_variance = planned_hours * labor_rate - total_hours * labor_rate
        hours_per_day = total_hours / work_days
        schedule_variance = (total_quantity / average - planned_hours) / hours_per_day
        planned_vs_actual = (average - baseline_rate) / baseline_rate * 100.0
    else:
        baseline_rate = None

    return ProductivityAnalytics(
        id=f"pa-{project_id}-{cost_code_id}-{PeriodType(period_type).value}",
        project_id=project_id,
        cost_code_id=cost_code_id,
        period_type=period_type,
        period_start=entries[0].date,
        period_end=entries[-1].date,
        entry_count=len(entries),
        work_days=work_days,
        peak_unit_rate=stats["peak"],
        average_unit_rate=stats["average"],
        low_unit_rate=stats["low"],
        standard_deviation=stats["std"],
        total_labor_hours=total_hours,
        total_quantity_installed=total_quantity,
        trend_direction=trend,
        trend_magnitude=magnitude,
        baseline_unit_rate=baseline_rate,
        cost_variance=cost_variance,
        schedule_variance=schedule_variance,
        planned_vs_actual_variance=planned_vs_actual,
    )


def _replace_rows(engine, project_id: str, cost_code_id: str, period_types, records):
    with engine.begin() as conn:
        for period_type in period_types:
            store.delete_project_analytics(conn, project_id, cost_code_id, period_type)
        for record in records:
            conn.execute(insert(productivity_analytics_table), record.model_dump(mode="json"))


def recompute_analytics(
    engine,
    project_id: str,
    period_types: Sequence[PeriodType] = (PeriodType.PROJECT_TO_DATE,),
    labor_rate: float = None,
) -> List[ProductivityAnalytics]:
    """
    Recompute and replace the analytics rows of a project.

    Each cost code's rows are replaced in their own transaction, one code after
    another. On failure an AnalyticsRefreshError is raised and rows already
    replaced for earlier cost codes are kept.
    """
    settings = get_settings()
    labor_rate = settings.labor_rate if labor_rate is None else labor_rate
    period_types = [PeriodType(p) for p in period_types]

    try:
        entries = store.fetch_entries(engine, project_id)
        baselines = store.fetch_active_baselines(engine, project_id)
        existing = {a.cost_code_id for a in store.fetch_analytics(engine, project_id) if a.period_type in period_types}
    except SQLAlchemyError as exc:
        raise AnalyticsRefreshError(project_id, reason=str(exc)) from exc

    by_code = defaultdict(list)
    for e in entries:
        by_code[e.cost_code_id].append(e)
    as_of = max((e.date for e in entries), default=None)

    results = []
    for cost_code_id in sorted(set(by_code) | existing):
        baseline = baselines.get(cost_code_id)
        records = []
        for period_type in period_types:
            windowed = entries_in_period(by_code.get(cost_code_id, []), period_type, as_of) if as_of else []
            record = compute_cost_code_analytics(
                project_id,
                cost_code_id,
                windowed,
                period_type,
                baseline.baseline_unit_rate if baseline else None,
                labor_rate,
                settings.trend_window,
                settings.trend_band,
            )
            if record is not None:
                records.append(record)
        try:
            _replace_rows(engine, project_id, cost_code_id, period_types, records)
        except SQLAlchemyError as exc:
            logger.exception("Analytics refresh for %s stopped at cost code %s", project_id, cost_code_id)
            raise AnalyticsRefreshError(project_id, cost_code_id, str(exc)) from exc
        results.extend(records)

    logger.info("recomputed %d analytics rows for project %s", len(results), project_id)
    return results
