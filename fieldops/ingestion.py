import logging
import os

import numpy as np
import pandas as pd

from fieldops import store
from fieldops.models import BaselineSource, CostCode
from fieldops.productivity import set_baseline

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["code", "csi_division", "activity"]


def _read_table(file_path) -> pd.DataFrame:
    if isinstance(file_path, (str, os.PathLike)) and str(file_path).lower().endswith(".csv"):
        return pd.read_csv(file_path, dtype=str)
    return pd.read_excel(file_path, dtype=str)


def ingest_cost_codes(file_path, project_id: str, engine) -> list:
    """
    Load a project's cost code registry from a spreadsheet.

    Expected columns: code, csi_division, activity and optionally description,
    unit_of_measure, budgeted_quantity, budgeted_unit_price, baseline_unit_rate.
    Rows are upserted by (project, code). A positive baseline_unit_rate sets the
    code's active baseline with source bid_estimate.
    """
    # read every cell as text so codes like 3100 never become "3100.0"
    df = _read_table(file_path)
    df.columns = [str(c).strip().lower() for c in df.columns]
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Cost code sheet is missing columns: {', '.join(missing)}")

    df = df.replace({np.nan: None})
    existing = {cc.code: cc for cc in store.fetch_cost_codes(engine, project_id, active_only=False)}

    saved = []
    for _, row in df.iterrows():
        code = row.get("code")
        if not code:
            continue
        code = str(code).strip()
        previous = existing.get(code)
        cost_code = CostCode(
            id=previous.id if previous else f"cc-{project_id}-{code}",
            project_id=project_id,
            code=code,
            csi_division=str(row.get("csi_division") or ""),
            activity=str(row.get("activity") or ""),
            description=row.get("description"),
            unit_of_measure=row.get("unit_of_measure") or "unit",
            budgeted_quantity=float(row.get("budgeted_quantity") or 0.0),
            budgeted_unit_price=float(row["budgeted_unit_price"]) if row.get("budgeted_unit_price") else None,
        )
        store.save_cost_code(engine, cost_code)
        saved.append(cost_code)

        rate = row.get("baseline_unit_rate")
        if rate is not None and float(rate) > 0:
            set_baseline(engine, project_id, cost_code.id, float(rate), BaselineSource.BID_ESTIMATE)

    logger.info("ingested %d cost codes for project %s", len(saved), project_id)
    return saved
