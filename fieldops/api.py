from datetime import date
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel

from fieldops import store
from fieldops.analytics import recompute_analytics
from fieldops.capture import approve_time, record_daily_log
from fieldops.causation import build_causation_chains, chain_statistics, filter_chains
from fieldops.config import get_settings
from fieldops.database import init_db
from fieldops.errors import AnalyticsRefreshError, InvalidBaselineError, RecordNotFoundError
from fieldops.logger import configure_logging
from fieldops.models import (
    BaselineSource,
    ChainFilter,
    CostCode,
    DailyLog,
    DelayEvent,
    NoticeLogEntry,
    PeriodType,
    TimeEntry,
)
from fieldops.productivity import establish_baseline, set_baseline
from fieldops.summary import get_productivity_summary

configure_logging(get_settings().log_level)

app = FastAPI(title="fieldops")


@lru_cache(maxsize=1)
def _default_engine():
    return init_db()


def get_engine():
    return _default_engine()


class SetBaselineRequest(BaseModel):
    cost_code_id: str
    baseline_unit_rate: float
    source: BaselineSource = BaselineSource.BID_ESTIMATE


class EstablishBaselineRequest(BaseModel):
    cost_code_id: str
    start: date
    end: date


class ApproveTimeRequest(BaseModel):
    entry_ids: List[str]


class RecomputeRequest(BaseModel):
    period_types: List[PeriodType] = [PeriodType.PROJECT_TO_DATE]
    labor_rate: Optional[float] = None


def _event_response(event):
    return {
        "entries_derived": len(event.payload.get("entries", [])),
        "warnings": event.warnings,
        "errors": event.errors,
    }


@app.post("/projects/{project_id}/cost-codes")
def save_cost_codes(project_id: str, cost_codes: List[CostCode], engine=Depends(get_engine)):
    for cost_code in cost_codes:
        if cost_code.project_id != project_id:
            raise HTTPException(status_code=400, detail=f"Cost code {cost_code.id} belongs to another project")
        store.save_cost_code(engine, cost_code)
    return {"status": "success", "saved": len(cost_codes)}


@app.post("/projects/{project_id}/baselines")
def set_baseline_endpoint(project_id: str, request: SetBaselineRequest, engine=Depends(get_engine)):
    try:
        baseline = set_baseline(engine, project_id, request.cost_code_id, request.baseline_unit_rate, request.source)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidBaselineError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return baseline


@app.post("/projects/{project_id}/baselines/establish")
def establish_baseline_endpoint(project_id: str, request: EstablishBaselineRequest, engine=Depends(get_engine)):
    try:
        baseline = establish_baseline(engine, project_id, request.cost_code_id, request.start, request.end)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if baseline is None:
        raise HTTPException(status_code=400, detail="Not enough productivity entries in the window to set a baseline")
    return baseline


@app.post("/daily-logs")
def save_daily_log(daily_log: DailyLog, engine=Depends(get_engine)):
    event = record_daily_log(engine, daily_log)
    return {"status": "success", "daily_log_id": daily_log.id, **_event_response(event)}


@app.get("/daily-logs/{daily_log_id}")
def get_daily_log(daily_log_id: str, engine=Depends(get_engine)):
    try:
        return store.get_daily_log(engine, daily_log_id)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post("/delay-events")
def save_delay_event(event: DelayEvent, engine=Depends(get_engine)):
    store.save_delay_event(engine, event)
    return {"status": "success", "delay_event_id": event.id}


@app.post("/notices")
def save_notice(notice: NoticeLogEntry, engine=Depends(get_engine)):
    store.save_notice(engine, notice)
    return {"status": "success", "notice_id": notice.id}


@app.post("/time-entries")
def save_time_entries(entries: List[TimeEntry], engine=Depends(get_engine)):
    store.save_time_entries(engine, entries)
    return {"status": "success", "saved": len(entries)}


@app.post("/projects/{project_id}/time-entries/approve")
def approve_time_entries(project_id: str, request: ApproveTimeRequest, engine=Depends(get_engine)):
    try:
        event = approve_time(engine, project_id, request.entry_ids)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "success", "dates": event.payload["dates"], **_event_response(event)}


@app.post("/projects/{project_id}/recompute-analytics")
def recompute_analytics_endpoint(project_id: str, request: RecomputeRequest = None, engine=Depends(get_engine)):
    request = request or RecomputeRequest()
    try:
        rows = recompute_analytics(engine, project_id, request.period_types, request.labor_rate)
    except AnalyticsRefreshError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"status": "success", "analytics": rows}


@app.get("/projects/{project_id}/productivity-summary")
def productivity_summary(project_id: str, engine=Depends(get_engine)):
    return get_productivity_summary(engine, project_id)


@app.get("/projects/{project_id}/causation-chains")
def causation_chains(project_id: str, filter: ChainFilter = Query(ChainFilter.ALL), engine=Depends(get_engine)):
    chains = build_causation_chains(engine, project_id)
    return {
        "project_id": project_id,
        "statistics": chain_statistics(chains),
        "chains": filter_chains(chains, filter),
    }
