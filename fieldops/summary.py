# fieldops/summary.py
import logging
from typing import Optional

from fieldops import store
from fieldops.config import Settings, get_settings
from fieldops.models import (
    CostCode,
    CostCodeSummary,
    PeriodType,
    ProductivityAnalytics,
    ProductivityBaseline,
    ProductivitySummary,
    TrendDirection,
)

logger = logging.getLogger(__name__)


def percent_complete(installed: float, budgeted: float) -> float:
    if not budgeted or budgeted <= 0:
        return 0.0
    return min(100.0, max(0.0, installed / budgeted * 100.0))


def days_behind(remaining: float, current_rate: float, baseline_rate: Optional[float],
                hours_per_day: float) -> float:
    """
    Extra work days the remaining quantity needs at the current rate compared
    with the baseline rate. Never negative; 0 when either rate is unknown.
    """
    if remaining <= 0 or not baseline_rate or current_rate <= 0 or hours_per_day <= 0:
        return 0.0
    at_current = remaining / current_rate / hours_per_day
    at_baseline = remaining / baseline_rate / hours_per_day
    return max(0.0, at_current - at_baseline)


def summarize_cost_code(cost_code: CostCode, analytics: Optional[ProductivityAnalytics],
                        baseline: Optional[ProductivityBaseline], settings: Settings) -> CostCodeSummary:
    baseline_rate = baseline.baseline_unit_rate if baseline else None

    if analytics is None:
        return CostCodeSummary(
            cost_code=cost_code,
            current_unit_rate=0.0,
            baseline_unit_rate=baseline_rate,
            productivity_index=None,
            percent_complete=0.0,
            total_quantity_installed=0.0,
            days_behind=0.0,
            is_at_risk=False,
            trend_direction=TrendDirection.STABLE,
        )

    current_rate = analytics.average_unit_rate
    index = current_rate / baseline_rate if baseline_rate else None
    installed = analytics.total_quantity_installed
    complete = percent_complete(installed, cost_code.budgeted_quantity)
    remaining = max(0.0, cost_code.budgeted_quantity - installed)
    hours_per_day = analytics.total_labor_hours / analytics.work_days if analytics.work_days else 0.0

    return CostCodeSummary(
        cost_code=cost_code,
        current_unit_rate=current_rate,
        baseline_unit_rate=baseline_rate,
        productivity_index=index,
        percent_complete=complete,
        total_quantity_installed=installed,
        days_behind=days_behind(remaining, current_rate, baseline_rate, hours_per_day),
        is_at_risk=(
            index is not None
            and index < settings.at_risk_threshold
            and complete < settings.completion_threshold
        ),
        trend_direction=analytics.trend_direction,
    )


def get_productivity_summary(engine, project_id: str, settings: Settings = None) -> ProductivitySummary:
    """
    Per cost code productivity view over the stored project-to-date analytics.
    Reads only; call recompute_analytics first for new entries to show up.
    """
    settings = settings or get_settings()
    cost_codes = store.fetch_cost_codes(engine, project_id)
    baselines = store.fetch_active_baselines(engine, project_id)
    analytics = {
        a.cost_code_id: a
        for a in store.fetch_analytics(engine, project_id, PeriodType.PROJECT_TO_DATE)
    }

    summaries = [
        summarize_cost_code(cc, analytics.get(cc.id), baselines.get(cc.id), settings)
        for cc in cost_codes
    ]
    indices = [s.productivity_index for s in summaries if s.productivity_index is not None]
    used = [analytics[cc.id].period_end for cc in cost_codes if cc.id in analytics]

    summary = ProductivitySummary(
        project_id=project_id,
        cost_code_summaries=summaries,
        overall_productivity_index=sum(indices) / len(indices) if indices else None,
        at_risk_count=sum(1 for s in summaries if s.is_at_risk),
        total_cost_codes=len(cost_codes),
        last_updated=max(used) if used else None,
    )
    logger.debug("summary for %s: %d codes, %d at risk", project_id, summary.total_cost_codes, summary.at_risk_count)
    return summary
