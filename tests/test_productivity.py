import pytest
from sqlalchemy.exc import OperationalError

from fieldops import store
from fieldops.errors import InvalidBaselineError, RecordNotFoundError
from fieldops.models import (
    ApprovalStatus,
    BaselineSource,
    DailyLog,
    EntrySource,
    ManpowerEntry,
    TimeEntry,
    WorkPerformedEntry,
)
from fieldops.productivity import (
    attribute_labor_hours,
    derive_productivity_entries,
    derive_productivity_from_time_entries,
    establish_baseline,
    manpower_hours,
    set_baseline,
)
from factories import PROJECT_ID, day, insert_entries, make_cost_code, make_entry


def _log(log_id="log-1", on_date=None, manpower=None, work=None, notes=None):
    return DailyLog(
        id=log_id,
        project_id=PROJECT_ID,
        date=on_date or day(0),
        manpower=manpower or [],
        work_performed=work or [],
        notes=notes,
    )


def test_manpower_hours_defaults_to_eight_hour_days():
    log = _log(manpower=[
        ManpowerEntry(trade="carpenters", journeyman_count=3, foreman_count=1),
        ManpowerEntry(trade="laborers", journeyman_count=2, hours_worked=10, overtime_hours=4),
    ])
    assert manpower_hours(log, 8) == 4 * 8 + 2 * 10 + 4


def test_attribute_hours_prefers_explicit_then_crew_size_then_share():
    log = _log(
        manpower=[ManpowerEntry(journeyman_count=10)],  # 80 crew hours
        work=[
            WorkPerformedEntry(csi_division="03", activity="Formwork", quantity=100, crew_hours_worked=20),
            WorkPerformedEntry(csi_division="03", activity="Rebar", quantity=50, crew_size=2),
            WorkPerformedEntry(csi_division="03", activity="Pour", quantity=30),
            WorkPerformedEntry(csi_division="03", activity="Finish", quantity=10),
            WorkPerformedEntry(csi_division="03", activity="Cleanup"),
        ],
    )
    hours = attribute_labor_hours(log, 8)
    # 80 - 20 - 16 = 44 left over for the two lines without hours
    assert hours == [20, 16, 22, 22, None]


def test_derive_entry_from_explicit_crew_hours(engine, cost_code):
    log = _log(work=[WorkPerformedEntry(
        csi_division="03", activity="Formwork", cost_code_id=cost_code.id,
        quantity=400, crew_hours_worked=40,
    )])
    store.save_daily_log(engine, log)
    result = derive_productivity_entries(engine, log)

    assert result.warnings == []
    assert len(result.entries) == 1
    entry = result.entries[0]
    assert entry.id == "pe-log-1-0"
    assert entry.cost_code_id == cost_code.id
    assert entry.labor_hours == 40
    assert entry.computed_unit_rate == pytest.approx(10.0)
    assert entry.source == EntrySource.DAILY_LOG
    assert store.fetch_entries(engine, PROJECT_ID) == result.entries


def test_derive_matches_cost_code_by_division_and_activity(engine, cost_code):
    log = _log(work=[WorkPerformedEntry(csi_division="03", activity="Formwork", quantity=320, crew_size=4)])
    result = derive_productivity_entries(engine, log)
    assert [e.cost_code_id for e in result.entries] == [cost_code.id]
    assert result.entries[0].labor_hours == 32
    assert result.entries[0].computed_unit_rate == pytest.approx(10.0)


def test_unmatched_line_becomes_warning(engine, cost_code):
    log = _log(work=[WorkPerformedEntry(csi_division="09", activity="Drywall", quantity=500, crew_hours_worked=40)])
    result = derive_productivity_entries(engine, log)
    assert result.entries == []
    assert len(result.warnings) == 1
    assert "no matching cost code" in result.warnings[0]


def test_lines_without_quantity_or_hours_are_skipped(engine, cost_code):
    log = _log(work=[
        WorkPerformedEntry(csi_division="03", activity="Formwork", quantity=0, crew_hours_worked=8),
        WorkPerformedEntry(csi_division="03", activity="Formwork", quantity=100),
    ])
    result = derive_productivity_entries(engine, log)
    assert result.entries == []
    assert result.warnings == []


def test_rederiving_an_edited_log_does_not_duplicate(engine, cost_code):
    log = _log(work=[WorkPerformedEntry(csi_division="03", activity="Formwork", quantity=400, crew_hours_worked=40)])
    derive_productivity_entries(engine, log)
    derive_productivity_entries(engine, log)
    assert len(store.fetch_entries(engine, PROJECT_ID)) == 1

    edited = log.model_copy(update={"work_performed": [
        WorkPerformedEntry(csi_division="03", activity="Formwork", quantity=300, crew_hours_worked=40, notes="Rework east wall"),
    ]})
    derive_productivity_entries(engine, edited)
    entries = store.fetch_entries(engine, PROJECT_ID)
    assert len(entries) == 1
    assert entries[0].quantity == 300
    assert entries[0].rework_included is True


def test_approved_time_supersedes_daily_log_hours(engine, cost_code):
    log = _log(
        manpower=[ManpowerEntry(journeyman_count=4)],
        work=[WorkPerformedEntry(csi_division="03", activity="Formwork", cost_code_id=cost_code.id, quantity=300)],
    )
    store.save_daily_log(engine, log)
    derive_productivity_entries(engine, log)
    assert store.fetch_entries(engine, PROJECT_ID)[0].labor_hours == 32

    store.save_time_entries(engine, [
        TimeEntry(id=f"te-{i}", project_id=PROJECT_ID, date=day(0), worker_id=f"w{i}",
                  cost_code_id=cost_code.id, regular_hours=8, overtime_hours=2 if i == 0 else 0,
                  approval_status=ApprovalStatus.APPROVED)
        for i in range(3)
    ])
    result = derive_productivity_from_time_entries(engine, PROJECT_ID, day(0))

    entries = store.fetch_entries(engine, PROJECT_ID)
    assert entries == result.entries
    assert len(entries) == 1
    entry = entries[0]
    assert entry.source == EntrySource.TIME_ENTRY
    assert entry.labor_hours == 26
    assert entry.quantity == 300
    assert entry.crew_size == 3
    assert entry.overtime_included is True
    assert entry.daily_log_id == log.id

    # re-saving the log must not bring the daily log hours back
    derive_productivity_entries(engine, log)
    assert [e.source for e in store.fetch_entries(engine, PROJECT_ID)] == [EntrySource.TIME_ENTRY]


def test_editing_log_after_time_approval_updates_quantity(engine, cost_code):
    log = _log(work=[WorkPerformedEntry(csi_division="03", activity="Formwork", cost_code_id=cost_code.id,
                                        quantity=300, crew_hours_worked=30)])
    store.save_daily_log(engine, log)
    derive_productivity_entries(engine, log)
    store.save_time_entries(engine, [
        TimeEntry(id="te-1", project_id=PROJECT_ID, date=day(0), worker_id="w1", cost_code_id=cost_code.id,
                  regular_hours=30, approval_status=ApprovalStatus.APPROVED),
    ])
    derive_productivity_from_time_entries(engine, PROJECT_ID, day(0))

    edited = log.model_copy(update={"work_performed": [
        WorkPerformedEntry(csi_division="03", activity="Formwork", cost_code_id=cost_code.id,
                           quantity=100, crew_hours_worked=30),
    ]})
    store.save_daily_log(engine, edited)
    result = derive_productivity_entries(engine, edited)

    entries = store.fetch_entries(engine, PROJECT_ID)
    assert [(e.source, e.quantity, e.labor_hours) for e in entries] == [(EntrySource.TIME_ENTRY, 100, 30)]
    assert entries[0].computed_unit_rate == pytest.approx(100 / 30)
    assert result.entries == entries


def test_store_failure_during_log_derivation_becomes_warning(engine, cost_code, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(store, "fetch_cost_codes", broken)
    log = _log(work=[WorkPerformedEntry(csi_division="03", activity="Formwork", quantity=400, crew_hours_worked=40)])
    result = derive_productivity_entries(engine, log)

    assert result.entries == []
    assert len(result.warnings) == 1
    assert "log-1" in result.warnings[0]


def test_store_failure_during_time_derivation_becomes_warning(engine, cost_code, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(store, "fetch_time_entries", broken)
    result = derive_productivity_from_time_entries(engine, PROJECT_ID, day(0))

    assert result.entries == []
    assert len(result.warnings) == 1
    assert day(0).isoformat() in result.warnings[0]


def test_pending_time_entries_are_ignored(engine, cost_code):
    store.save_time_entries(engine, [
        TimeEntry(id="te-1", project_id=PROJECT_ID, date=day(0), worker_id="w1",
                  cost_code_id=cost_code.id, regular_hours=8),
    ])
    result = derive_productivity_from_time_entries(engine, PROJECT_ID, day(0))
    assert result.entries == []
    assert store.fetch_entries(engine, PROJECT_ID) == []


def test_approved_time_without_quantity_warns(engine, cost_code):
    store.save_time_entries(engine, [
        TimeEntry(id="te-1", project_id=PROJECT_ID, date=day(0), worker_id="w1",
                  cost_code_id=cost_code.id, regular_hours=8, approval_status=ApprovalStatus.APPROVED),
    ])
    result = derive_productivity_from_time_entries(engine, PROJECT_ID, day(0).isoformat())
    assert result.entries == []
    assert "No installed quantity" in result.warnings[0]


def test_set_baseline_replaces_active_baseline(engine, cost_code):
    first = set_baseline(engine, PROJECT_ID, cost_code.id, 10.0)
    second = set_baseline(engine, PROJECT_ID, cost_code.id, 12.0, BaselineSource.INDUSTRY_STANDARD)

    active = store.fetch_active_baselines(engine, PROJECT_ID)
    assert list(active) == [cost_code.id]
    assert active[cost_code.id].id == second.id
    assert active[cost_code.id].baseline_unit_rate == 12.0
    assert first.id != second.id


@pytest.mark.parametrize("rate", [0, -1.5])
def test_set_baseline_rejects_non_positive_rate(engine, cost_code, rate):
    with pytest.raises(InvalidBaselineError):
        set_baseline(engine, PROJECT_ID, cost_code.id, rate)


def test_set_baseline_unknown_cost_code(engine, cost_code):
    with pytest.raises(RecordNotFoundError):
        set_baseline(engine, PROJECT_ID, "cc-missing", 10.0)
    other = make_cost_code(code="05-100", project_id="proj-2")
    store.save_cost_code(engine, other)
    with pytest.raises(RecordNotFoundError):
        set_baseline(engine, PROJECT_ID, other.id, 10.0)


def test_establish_baseline_needs_five_entries(engine, cost_code):
    insert_entries(engine, [make_entry(cost_code.id, day(i), 100, 10) for i in range(4)])
    assert establish_baseline(engine, PROJECT_ID, cost_code.id, day(0), day(10)) is None
    assert store.fetch_active_baselines(engine, PROJECT_ID) == {}


def test_establish_baseline_from_early_period(engine, cost_code):
    insert_entries(engine, [make_entry(cost_code.id, day(i), 80 + 10 * (i % 2) * 4, 10) for i in range(12)])
    baseline = establish_baseline(engine, PROJECT_ID, cost_code.id, day(0), day(9))

    assert baseline.source == BaselineSource.EARLY_PERIOD
    assert baseline.sample_size == 10
    assert baseline.confidence == 0.75
    # rates alternate 8 and 12 over the window
    assert baseline.baseline_unit_rate == pytest.approx(10.0)
    assert store.fetch_active_baselines(engine, PROJECT_ID)[cost_code.id].sample_size == 10
