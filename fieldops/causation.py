# fieldops/causation.py
"""
Causation chains: trigger -> daily log documentation -> notice -> measured
productivity impact -> damages.

Chains are rebuilt from the current records on every call and never stored.
Links between a trigger and its logs or notices are best-effort:

- delay events match by id (logs embedding the event, notices listing it) or
  by a notice sent on the event's recorded notice date
- changes match logs by identical description and initiator, and notices that
  list the change (or its originating log) or were sent on its notice date
- conflicts match logs by identical description, and notices that list the
  originating log

A missing link is a gap in the chain, reported through a lower completeness
score, never an error.
"""

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional

from fieldops import store
from fieldops.models import (
    CausationChain,
    ChainFilter,
    ChainStatistics,
    ChainType,
    ChangeEntry,
    ConflictEntry,
    DailyLog,
    DelayEvent,
    NoticeLogEntry,
    ProductivityBaseline,
    ProductivityEntry,
    ProductivityImpact,
)

logger = logging.getLogger(__name__)

MAX_COMPLETENESS = 5


def completeness_score(has_logs: bool, has_notices: bool, has_impact: bool, cost_impact: Optional[float]) -> int:
    score = 1  # the trigger itself
    score += 1 if has_logs else 0
    score += 1 if has_notices else 0
    score += 1 if has_impact else 0
    score += 1 if cost_impact and cost_impact > 0 else 0
    return min(MAX_COMPLETENESS, score)


def productivity_impact(split_date: date, entries: Iterable[ProductivityEntry],
                        baselines: Dict[str, ProductivityBaseline]) -> Optional[ProductivityImpact]:
    """
    Mean unit rate of all entries before `split_date` against the mean on or
    after it. None when the project has no baseline or either side is empty.
    """
    if not baselines:
        return None
    entries = list(entries)
    before = [e.computed_unit_rate for e in entries if e.date < split_date]
    after = [e.computed_unit_rate for e in entries if e.date >= split_date]
    if not before or not after:
        return None

    before_rate = sum(before) / len(before)
    after_rate = sum(after) / len(after)
    if before_rate <= 0:
        return None
    # the project's first active baseline is reported as the reference rate
    baseline_rate = next(iter(baselines.values())).baseline_unit_rate

    return ProductivityImpact(
        split_date=split_date,
        baseline_unit_rate=baseline_rate,
        before_rate=before_rate,
        after_rate=after_rate,
        before_count=len(before),
        after_count=len(after),
        productivity_loss=max(0.0, (before_rate - after_rate) / before_rate * 100.0),
    )


def _chain(chain_type: ChainType, trigger_id: str, trigger_date: date, trigger, cost_impact,
           logs: List[DailyLog], notices: List[NoticeLogEntry], impact, source_log_id=None) -> CausationChain:
    return CausationChain(
        id=f"chain-{chain_type.value}-{trigger_id}",
        trigger_id=trigger_id,
        type=chain_type,
        trigger_date=trigger_date,
        trigger_event=trigger,
        source_daily_log_id=source_log_id,
        notices=notices,
        related_logs=logs,
        productivity_impact=impact,
        estimated_cost_impact=cost_impact or 0.0,
        completeness_score=completeness_score(bool(logs), bool(notices), impact is not None, cost_impact),
    )


def delay_event_chain(event: DelayEvent, daily_logs, notices, entries, baselines) -> CausationChain:
    logs = [log for log in daily_logs if any(d.id == event.id for d in log.delay_events)]
    related_notices = [
        n for n in notices
        if event.id in n.related_delay_event_ids
        or (event.notice_sent_date is not None and n.date_sent == event.notice_sent_date)
    ]
    impact = productivity_impact(event.date, entries, baselines)
    return _chain(ChainType.DELAY_EVENT, event.id, event.date, event, event.cost_impact,
                  logs, related_notices, impact, event.daily_log_id)


def change_chain(change: ChangeEntry, trigger_id: str, source_log: DailyLog,
                 daily_logs, notices, entries, baselines) -> CausationChain:
    logs = [
        log for log in daily_logs
        if any(c.description == change.description and c.initiated_by == change.initiated_by for c in log.changes)
    ]
    related_notices = [
        n for n in notices
        if trigger_id in n.related_change_ids
        or source_log.id in n.related_change_ids
        or (change.notice_date is not None and n.date_sent == change.notice_date)
    ]
    split = min((log.date for log in logs), default=source_log.date)
    impact = productivity_impact(split, entries, baselines)
    return _chain(ChainType.CHANGE_ORDER, trigger_id, source_log.date, change, change.estimated_cost_impact,
                  logs, related_notices, impact, source_log.id)


def conflict_chain(conflict: ConflictEntry, trigger_id: str, source_log: DailyLog,
                   daily_logs, notices, entries, baselines) -> CausationChain:
    logs = [log for log in daily_logs if any(c.description == conflict.description for c in log.conflicts)]
    related_notices = [n for n in notices if source_log.id in n.related_daily_log_ids]
    split = min((log.date for log in logs), default=source_log.date)
    impact = productivity_impact(split, entries, baselines)
    return _chain(ChainType.CONFLICT, trigger_id, source_log.date, conflict, conflict.estimated_cost_impact,
                  logs, related_notices, impact, source_log.id)


def _has_impact(*values) -> bool:
    return any(v is not None and v > 0 for v in values)


def correlate(
    delay_events: List[DelayEvent],
    daily_logs: List[DailyLog],
    notices: List[NoticeLogEntry],
    entries: List[ProductivityEntry],
    baselines: Dict[str, ProductivityBaseline],
) -> List[CausationChain]:
    """
    Build and order the chains for one project's records.
    Strongest documented first, most recent first among equals.
    """
    chains = [delay_event_chain(e, daily_logs, notices, entries, baselines) for e in delay_events]

    for log in daily_logs:
        for i, change in enumerate(log.changes):
            if _has_impact(change.estimated_cost_impact, change.estimated_schedule_impact):
                trigger_id = change.id or f"{log.id}:{i}"
                chains.append(change_chain(change, trigger_id, log, daily_logs, notices, entries, baselines))
        for i, conflict in enumerate(log.conflicts):
            if _has_impact(conflict.estimated_cost_impact, conflict.estimated_schedule_days_impact):
                trigger_id = conflict.id or f"{log.id}:{i}"
                chains.append(conflict_chain(conflict, trigger_id, log, daily_logs, notices, entries, baselines))

    chains.sort(key=lambda c: c.id)
    chains.sort(key=lambda c: c.trigger_date, reverse=True)
    chains.sort(key=lambda c: c.completeness_score, reverse=True)
    return chains


def build_causation_chains(engine, project_id: str) -> List[CausationChain]:
    chains = correlate(
        store.fetch_delay_events(engine, project_id),
        store.fetch_daily_logs(engine, project_id),
        store.fetch_notices(engine, project_id),
        store.fetch_entries(engine, project_id),
        store.fetch_active_baselines(engine, project_id),
    )
    logger.debug("built %d causation chains for %s", len(chains), project_id)
    return chains


def filter_chains(chains: List[CausationChain], chain_filter: ChainFilter = ChainFilter.ALL) -> List[CausationChain]:
    chain_filter = ChainFilter(chain_filter)
    if chain_filter == ChainFilter.WITH_NOTICES:
        return [c for c in chains if c.notices]
    if chain_filter == ChainFilter.MISSING_NOTICES:
        return [c for c in chains if not c.notices]
    return list(chains)


def chain_statistics(chains: List[CausationChain]) -> ChainStatistics:
    total = len(chains)
    average = sum(c.completeness_score for c in chains) / total if total else 0.0
    return ChainStatistics(
        total_chains=total,
        average_completeness=round(average, 1),
        documentation_gaps=sum(1 for c in chains if not c.notices or c.productivity_impact is None),
    )
