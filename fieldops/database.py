# fieldops/database.py
import logging
import os

from sqlalchemy import (
    create_engine, Table, Column, Integer, String, MetaData, Float, Boolean, JSON,
    UniqueConstraint,
)

from fieldops.config import get_settings, gen_folder

logger = logging.getLogger(__name__)

metadata = MetaData()

cost_codes_table = Table(
    "cost_codes",
    metadata,
    Column("id", String, primary_key=True),
    Column("project_id", String, index=True),
    Column("code", String),
    Column("csi_division", String),
    Column("activity", String),
    Column("description", String, nullable=True),
    Column("unit_of_measure", String),
    Column("budgeted_quantity", Float),
    Column("budgeted_unit_price", Float, nullable=True),
    Column("is_active", Boolean, default=True),
)

productivity_baselines_table = Table(
    "productivity_baselines",
    metadata,
    Column("id", String, primary_key=True),
    Column("project_id", String, index=True),
    Column("cost_code_id", String, index=True),
    Column("baseline_unit_rate", Float),
    Column("source", String),  # "bid_estimate", "early_period" or "industry_standard"
    Column("period_start", String, nullable=True),
    Column("period_end", String, nullable=True),
    Column("sample_size", Integer, nullable=True),
    Column("confidence", Float, nullable=True),
    Column("is_active", Boolean, default=True),
)

productivity_entries_table = Table(
    "productivity_entries",
    metadata,
    Column("id", String, primary_key=True),
    Column("project_id", String, index=True),
    Column("cost_code_id", String, index=True),
    Column("daily_log_id", String, nullable=True, index=True),
    Column("source", String),  # "daily_log" or "time_entry"
    Column("date", String),
    Column("csi_division", String, nullable=True),
    Column("activity", String, nullable=True),
    Column("quantity", Float),
    Column("labor_hours", Float),
    Column("computed_unit_rate", Float),
    Column("crew_size", Integer, nullable=True),
    Column("overtime_included", Boolean, default=False),
    Column("rework_included", Boolean, default=False),
    Column("notes", String, nullable=True),
)

productivity_analytics_table = Table(
    "productivity_analytics",
    metadata,
    Column("id", String, primary_key=True),
    Column("project_id", String, index=True),
    Column("cost_code_id", String),
    Column("period_type", String),
    Column("period_start", String),
    Column("period_end", String),
    Column("entry_count", Integer),
    Column("work_days", Integer),
    Column("peak_unit_rate", Float),
    Column("average_unit_rate", Float),
    Column("low_unit_rate", Float),
    Column("standard_deviation", Float),
    Column("total_labor_hours", Float),
    Column("total_quantity_installed", Float),
    Column("trend_direction", String),
    Column("trend_magnitude", Float),
    Column("baseline_unit_rate", Float, nullable=True),
    Column("cost_variance", Float, nullable=True),
    Column("schedule_variance", Float, nullable=True),
    Column("planned_vs_actual_variance", Float, nullable=True),
    UniqueConstraint("project_id", "cost_code_id", "period_type"),
)

# captured records below are owned by the capture screens; the engine only reads them
daily_logs_table = Table(
    "daily_logs",
    metadata,
    Column("id", String, primary_key=True),
    Column("project_id", String, index=True),
    Column("date", String),
    Column("payload", JSON),
)

delay_events_table = Table(
    "delay_events",
    metadata,
    Column("id", String, primary_key=True),
    Column("project_id", String, index=True),
    Column("daily_log_id", String, nullable=True),
    Column("date", String),
    Column("payload", JSON),
)

notice_logs_table = Table(
    "notice_logs",
    metadata,
    Column("id", String, primary_key=True),
    Column("project_id", String, index=True),
    Column("notice_type", String),
    Column("date_sent", String),
    Column("payload", JSON),
)

time_entries_table = Table(
    "time_entries",
    metadata,
    Column("id", String, primary_key=True),
    Column("project_id", String, index=True),
    Column("date", String),
    Column("worker_id", String),
    Column("cost_code_id", String, nullable=True),
    Column("approval_status", String),
    Column("payload", JSON),
)


def init_db(db_url: str = None):
    settings = get_settings()
    if not db_url:
        db_url = settings.database_url
    if db_url.startswith("sqlite:///") and ":memory:" not in db_url:
        # sqlite creates the file but not its folder
        db_dir = os.path.dirname(db_url[len("sqlite:///"):]) or gen_folder
        os.makedirs(db_dir, exist_ok=True)
    logger.debug("initializing db at %s", db_url)
    engine = create_engine(db_url, echo=settings.db_echo)
    metadata.create_all(engine)
    return engine
