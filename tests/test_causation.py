import pytest

from fieldops import store
from fieldops.causation import (
    build_causation_chains,
    chain_statistics,
    completeness_score,
    correlate,
    filter_chains,
    productivity_impact,
)
from fieldops.models import (
    ChainFilter,
    ChainType,
    ChangeEntry,
    ConflictEntry,
    DailyLog,
    DelayEvent,
    NoticeLogEntry,
    ProductivityBaseline,
)
from fieldops.productivity import set_baseline
from factories import PROJECT_ID, day, insert_entries, make_entry


def _delay(event_id="de-1", on_date=None, **kwargs):
    return DelayEvent(
        id=event_id,
        project_id=PROJECT_ID,
        date=on_date or day(3),
        description=kwargs.pop("description", "Crane down for repairs"),
        **kwargs,
    )


def _baseline(cost_code_id="cc-1", rate=10.0):
    return {cost_code_id: ProductivityBaseline(
        id=f"pb-{cost_code_id}", project_id=PROJECT_ID, cost_code_id=cost_code_id, baseline_unit_rate=rate,
    )}


def _before_and_after(cost_code_id="cc-1"):
    before = [make_entry(cost_code_id, day(i), 100, 10) for i in range(3)]
    after = [make_entry(cost_code_id, day(i), 60, 10) for i in range(3, 6)]
    return before + after


def test_completeness_score_counts_each_link():
    assert completeness_score(False, False, False, None) == 1
    assert completeness_score(True, False, False, 0) == 2
    assert completeness_score(True, True, True, 5000) == 5


def test_productivity_impact_measures_loss():
    impact = productivity_impact(day(3), _before_and_after(), _baseline())
    assert impact.before_rate == pytest.approx(10.0)
    assert impact.after_rate == pytest.approx(6.0)
    assert impact.productivity_loss == pytest.approx(40.0)
    assert (impact.before_count, impact.after_count) == (3, 3)
    assert impact.baseline_unit_rate == 10.0


def test_productivity_impact_uses_all_project_entries():
    # baseline on one code, all measured work on another
    impact = productivity_impact(day(3), _before_and_after("cc-2"), _baseline("cc-1", rate=9.0))
    assert impact.productivity_loss == pytest.approx(40.0)
    assert impact.baseline_unit_rate == 9.0


def test_productivity_impact_needs_a_baseline():
    assert productivity_impact(day(3), _before_and_after(), {}) is None


def test_productivity_impact_needs_both_sides():
    entries = [make_entry("cc-1", day(i), 100, 10) for i in range(3)]
    assert productivity_impact(day(3), entries, _baseline()) is None


def test_improvement_is_not_a_loss():
    entries = [make_entry("cc-1", day(0), 60, 10), make_entry("cc-1", day(5), 100, 10)]
    assert productivity_impact(day(3), entries, _baseline()).productivity_loss == 0.0


def test_lone_delay_event_scores_one():
    [chain] = correlate([_delay()], [], [], [], {})
    assert chain.type == ChainType.DELAY_EVENT
    assert chain.id == "chain-delay_event-de-1"
    assert chain.completeness_score == 1
    assert chain.notices == []
    assert chain.related_logs == []
    assert chain.productivity_impact is None
    assert chain.estimated_cost_impact == 0.0


def test_fully_documented_delay_event():
    event = _delay(daily_log_id="log-3", cost_impact=12000.0)
    log = DailyLog(id="log-3", project_id=PROJECT_ID, date=day(3), delay_events=[event])
    notice = NoticeLogEntry(id="n-1", project_id=PROJECT_ID, notice_type="delay", date_sent=day(4),
                            related_delay_event_ids=[event.id])

    [chain] = correlate([event], [log], [notice], _before_and_after(), _baseline())
    assert chain.completeness_score == 5
    assert [l.id for l in chain.related_logs] == ["log-3"]
    assert [n.id for n in chain.notices] == ["n-1"]
    assert chain.productivity_impact.productivity_loss == pytest.approx(40.0)
    assert chain.source_daily_log_id == "log-3"


def test_notice_matches_delay_by_sent_date():
    event = _delay(notice_sent_date=day(4))
    notice = NoticeLogEntry(id="n-1", project_id=PROJECT_ID, notice_type="delay", date_sent=day(4))
    [chain] = correlate([event], [], [notice], [], {})
    assert [n.id for n in chain.notices] == ["n-1"]


def test_changes_and_conflicts_need_an_impact():
    log = DailyLog(
        id="log-2",
        project_id=PROJECT_ID,
        date=day(2),
        changes=[
            ChangeEntry(initiated_by="owner", description="Add slab penetrations", estimated_cost_impact=4000),
            ChangeEntry(initiated_by="architect", description="Paint color swap"),
        ],
        conflicts=[
            ConflictEntry(description="Electrician blocking formwork", estimated_schedule_days_impact=1),
            ConflictEntry(description="Parking dispute"),
        ],
    )
    notice = NoticeLogEntry(id="n-1", project_id=PROJECT_ID, notice_type="conflict", date_sent=day(2),
                            related_daily_log_ids=["log-2"])

    chains = correlate([], [log], [notice], [], {})
    by_type = {c.type: c for c in chains}
    assert len(chains) == 2
    change = by_type[ChainType.CHANGE_ORDER]
    assert change.trigger_id == "log-2:0"
    assert change.estimated_cost_impact == 4000
    assert change.completeness_score == 3  # trigger, log, cost
    conflict = by_type[ChainType.CONFLICT]
    assert conflict.trigger_id == "log-2:0"
    assert [n.id for n in conflict.notices] == ["n-1"]
    assert conflict.completeness_score == 3  # trigger, log, notice


def test_change_matches_later_logs_by_description():
    change = ChangeEntry(id="co-7", initiated_by="owner", description="Add slab penetrations",
                         estimated_cost_impact=4000)
    first = DailyLog(id="log-1", project_id=PROJECT_ID, date=day(1), changes=[change])
    repeat = DailyLog(id="log-4", project_id=PROJECT_ID, date=day(4), changes=[change.model_copy(update={"id": None})])
    notice = NoticeLogEntry(id="n-1", project_id=PROJECT_ID, notice_type="change", date_sent=day(2),
                            related_change_ids=["co-7"])

    chains = correlate([], [first, repeat], [notice], [], {})
    co7 = next(c for c in chains if c.trigger_id == "co-7")
    assert [l.id for l in co7.related_logs] == ["log-1", "log-4"]
    assert [n.id for n in co7.notices] == ["n-1"]


def test_chains_are_ordered_by_score_then_date():
    documented = _delay("de-old", day(1), daily_log_id="log-1")
    log = DailyLog(id="log-1", project_id=PROJECT_ID, date=day(1), delay_events=[documented])
    recent = _delay("de-new", day(6))
    older = _delay("de-mid", day(4))

    chains = correlate([recent, older, documented], [log], [], [], {})
    assert [c.trigger_id for c in chains] == ["de-old", "de-new", "de-mid"]


def test_filter_and_statistics():
    event = _delay("de-1", day(3), daily_log_id="log-3")
    log = DailyLog(id="log-3", project_id=PROJECT_ID, date=day(3), delay_events=[event])
    notice = NoticeLogEntry(id="n-1", project_id=PROJECT_ID, notice_type="delay", date_sent=day(3),
                            related_delay_event_ids=["de-1"])
    chains = correlate([event, _delay("de-2", day(5))], [log], [notice], _before_and_after(), _baseline())

    assert [c.trigger_id for c in filter_chains(chains, ChainFilter.WITH_NOTICES)] == ["de-1"]
    assert [c.trigger_id for c in filter_chains(chains, "missing_notices")] == ["de-2"]
    assert len(filter_chains(chains)) == 2

    stats = chain_statistics(chains)
    assert stats.total_chains == 2
    # de-1: trigger, log, notice, impact = 4; de-2: trigger, impact = 2
    assert stats.average_completeness == 3.0
    assert stats.documentation_gaps == 1


def test_statistics_of_no_chains():
    stats = chain_statistics([])
    assert stats.total_chains == 0
    assert stats.average_completeness == 0.0
    assert stats.documentation_gaps == 0


def test_build_chains_from_store(engine, cost_code):
    set_baseline(engine, PROJECT_ID, cost_code.id, 10.0)
    insert_entries(engine, _before_and_after(cost_code.id))
    event = _delay(cost_impact=2500.0)
    store.save_daily_log(engine, DailyLog(id="log-3", project_id=PROJECT_ID, date=day(3), delay_events=[event]))
    store.save_notice(engine, NoticeLogEntry(id="n-1", project_id=PROJECT_ID, notice_type="delay",
                                             date_sent=day(4), related_delay_event_ids=[event.id]))

    [chain] = build_causation_chains(engine, PROJECT_ID)
    assert chain.trigger_id == event.id
    assert chain.source_daily_log_id == "log-3"
    assert chain.completeness_score == 5
    assert build_causation_chains(engine, "other-project") == []


def test_delay_removed_from_log_drops_its_chain(engine):
    kept, dropped = _delay("de-1"), _delay("de-2", day(4))
    log = DailyLog(id="log-3", project_id=PROJECT_ID, date=day(3), delay_events=[kept, dropped])
    store.save_daily_log(engine, log)
    assert len(build_causation_chains(engine, PROJECT_ID)) == 2

    store.save_daily_log(engine, log.model_copy(update={"delay_events": [kept]}))

    assert [e.id for e in store.fetch_delay_events(engine, PROJECT_ID)] == ["de-1"]
    assert [c.trigger_id for c in build_causation_chains(engine, PROJECT_ID)] == ["de-1"]
