# fieldops/errors.py


class FieldOpsError(Exception):
    """Base class for errors raised by the analytics engine."""


class RecordNotFoundError(FieldOpsError):
    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} '{record_id}' not found")


class InvalidBaselineError(FieldOpsError):
    pass


class AnalyticsRefreshError(FieldOpsError):
    """
    Raised when recomputing a project's analytics fails part-way.
    Rows for cost codes finished before the failure are left in place.
    """

    def __init__(self, project_id: str, cost_code_id: str = None, reason: str = ""):
        self.project_id = project_id
        self.cost_code_id = cost_code_id
        where = f" at cost code {cost_code_id}" if cost_code_id else ""
        super().__init__(f"Analytics refresh failed for project {project_id}{where}: {reason}")
