# fieldops/models.py

from datetime import date
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field


class PeriodType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    PROJECT_TO_DATE = "project_to_date"


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class EntrySource(str, Enum):
    DAILY_LOG = "daily_log"
    TIME_ENTRY = "time_entry"


class BaselineSource(str, Enum):
    BID_ESTIMATE = "bid_estimate"
    EARLY_PERIOD = "early_period"
    INDUSTRY_STANDARD = "industry_standard"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPORTED = "exported"


class ChainType(str, Enum):
    DELAY_EVENT = "delay_event"
    CHANGE_ORDER = "change_order"
    CONFLICT = "conflict"


class ChainFilter(str, Enum):
    ALL = "all"
    WITH_NOTICES = "with_notices"
    MISSING_NOTICES = "missing_notices"


# ── Reference data ──

class CostCode(BaseModel):
    id: str
    project_id: str
    code: str
    csi_division: str
    activity: str
    description: Optional[str] = None
    unit_of_measure: str = "unit"
    budgeted_quantity: float = 0.0
    budgeted_unit_price: Optional[float] = None
    is_active: bool = True


class ProductivityBaseline(BaseModel):
    id: str
    project_id: str
    cost_code_id: str
    baseline_unit_rate: float
    source: BaselineSource = BaselineSource.BID_ESTIMATE
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    sample_size: Optional[int] = None
    confidence: Optional[float] = None
    is_active: bool = True


# ── Daily log and its embedded sub-records ──

class ManpowerEntry(BaseModel):
    sub_id: Optional[str] = None
    trade: Optional[str] = None
    journeyman_count: int = 0
    apprentice_count: int = 0
    foreman_count: int = 0
    hours_worked: Optional[float] = None
    overtime_hours: Optional[float] = None

    @property
    def head_count(self) -> int:
        return self.journeyman_count + self.apprentice_count + self.foreman_count


class WorkPerformedEntry(BaseModel):
    csi_division: str
    activity: str
    cost_code_id: Optional[str] = None
    takt_zone: Optional[str] = None
    quantity: Optional[float] = None
    unit_of_measure: Optional[str] = None
    crew_size: Optional[int] = None
    crew_hours_worked: Optional[float] = None
    notes: Optional[str] = None


class ChangeEntry(BaseModel):
    id: Optional[str] = None
    initiated_by: str
    description: str
    affected_divisions: List[str] = Field(default_factory=list)
    estimated_cost_impact: Optional[float] = None
    estimated_schedule_impact: Optional[float] = None
    notice_date: Optional[date] = None
    contract_clause: Optional[str] = None


class ConflictEntry(BaseModel):
    id: Optional[str] = None
    category: Optional[str] = None
    severity: Optional[str] = None
    description: str
    parties_involved: List[str] = Field(default_factory=list)
    estimated_cost_impact: Optional[float] = None
    estimated_schedule_days_impact: Optional[float] = None
    root_cause: Optional[str] = None


class DelayEvent(BaseModel):
    id: str
    project_id: str
    daily_log_id: Optional[str] = None
    date: date
    delay_type: Optional[str] = None
    cause_category: Optional[str] = None
    description: str
    responsible_party: Optional[str] = None
    calendar_days_impacted: Optional[float] = None
    critical_path_impacted: Optional[bool] = None
    affected_activities: List[str] = Field(default_factory=list)
    notice_sent_date: Optional[date] = None
    cost_impact: Optional[float] = None


class DailyLog(BaseModel):
    id: str
    project_id: str
    date: date
    superintendent_id: Optional[str] = None
    manpower: List[ManpowerEntry] = Field(default_factory=list)
    work_performed: List[WorkPerformedEntry] = Field(default_factory=list)
    changes: List[ChangeEntry] = Field(default_factory=list)
    conflicts: List[ConflictEntry] = Field(default_factory=list)
    delay_events: List[DelayEvent] = Field(default_factory=list)
    notes: Optional[str] = None


class NoticeLogEntry(BaseModel):
    id: str
    project_id: str
    notice_type: str
    date_sent: date
    sent_to: Optional[str] = None
    sent_from: Optional[str] = None
    contract_clause: Optional[str] = None
    related_delay_event_ids: List[str] = Field(default_factory=list)
    related_change_ids: List[str] = Field(default_factory=list)
    related_daily_log_ids: List[str] = Field(default_factory=list)
    content: Optional[str] = None


class TimeEntry(BaseModel):
    id: str
    project_id: str
    date: date
    worker_id: str
    worker_name: Optional[str] = None
    trade: Optional[str] = None
    cost_code_id: Optional[str] = None
    daily_log_id: Optional[str] = None
    regular_hours: float = 0.0
    overtime_hours: float = 0.0
    double_time_hours: float = 0.0
    approval_status: ApprovalStatus = ApprovalStatus.PENDING

    @property
    def total_hours(self) -> float:
        return self.regular_hours + self.overtime_hours + self.double_time_hours


# ── Derived, stored ──

class ProductivityEntry(BaseModel):
    id: str
    project_id: str
    cost_code_id: str
    date: date
    quantity: float
    labor_hours: float
    computed_unit_rate: float
    source: EntrySource = EntrySource.DAILY_LOG
    daily_log_id: Optional[str] = None
    csi_division: Optional[str] = None
    activity: Optional[str] = None
    crew_size: Optional[int] = None
    overtime_included: bool = False
    rework_included: bool = False
    notes: Optional[str] = None


class ProductivityAnalytics(BaseModel):
    id: str
    project_id: str
    cost_code_id: str
    period_type: PeriodType
    period_start: date
    period_end: date
    entry_count: int
    work_days: int
    peak_unit_rate: float
    average_unit_rate: float
    low_unit_rate: float
    standard_deviation: float
    total_labor_hours: float
    total_quantity_installed: float
    trend_direction: TrendDirection
    trend_magnitude: float
    baseline_unit_rate: Optional[float] = None
    cost_variance: Optional[float] = None
    schedule_variance: Optional[float] = None
    planned_vs_actual_variance: Optional[float] = None


# ── Derived, never stored ──

class CostCodeSummary(BaseModel):
    cost_code: CostCode
    current_unit_rate: float
    baseline_unit_rate: Optional[float] = None
    productivity_index: Optional[float] = None
    percent_complete: float
    total_quantity_installed: float
    days_behind: float
    is_at_risk: bool
    trend_direction: TrendDirection


class ProductivitySummary(BaseModel):
    project_id: str
    cost_code_summaries: List[CostCodeSummary]
    overall_productivity_index: Optional[float] = None
    at_risk_count: int
    total_cost_codes: int
    last_updated: Optional[date] = None


class ProductivityImpact(BaseModel):
    split_date: date
    baseline_unit_rate: float
    before_rate: float
    after_rate: float
    before_count: int
    after_count: int
    productivity_loss: float


class CausationChain(BaseModel):
    id: str
    trigger_id: str
    type: ChainType
    trigger_date: date
    trigger_event: Union[DelayEvent, ChangeEntry, ConflictEntry]
    source_daily_log_id: Optional[str] = None
    notices: List[NoticeLogEntry] = Field(default_factory=list)
    related_logs: List[DailyLog] = Field(default_factory=list)
    productivity_impact: Optional[ProductivityImpact] = None
    estimated_cost_impact: float = 0.0
    completeness_score: int


class ChainStatistics(BaseModel):
    total_chains: int
    average_completeness: float
    documentation_gaps: int


class DerivationResult(BaseModel):
    entries: List[ProductivityEntry] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
