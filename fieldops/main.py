import json

import typer
from dotenv import load_dotenv
load_dotenv()

from fieldops.analytics import recompute_analytics
from fieldops.causation import build_causation_chains, chain_statistics, filter_chains
from fieldops.config import get_settings
from fieldops.database import init_db
from fieldops.errors import FieldOpsError
from fieldops.ingestion import ingest_cost_codes
from fieldops.logger import configure_logging
from fieldops.models import BaselineSource, ChainFilter, PeriodType
from fieldops.productivity import establish_baseline, set_baseline
from fieldops.summary import get_productivity_summary

app = typer.Typer()


@app.callback()
def setup(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level")):
    configure_logging("DEBUG" if verbose else get_settings().log_level)


def _echo_json(data):
    typer.echo(json.dumps(data, indent=2))


def _fail(error: FieldOpsError):
    typer.echo(f"Error: {error}", err=True)
    raise typer.Exit(code=1)


@app.command("init-db")
def init_db_cli(db_url: str = typer.Option(None, help="Database URL, defaults to FIELDOPS_DATABASE_URL")):
    engine = init_db(db_url)
    typer.echo(f"DB initialized at: {engine.url}")


@app.command("ingest-cost-codes")
def ingest_cost_codes_cli(file_path: str, project_id: str):
    engine = init_db()
    cost_codes = ingest_cost_codes(file_path, project_id, engine)
    typer.echo(f"Ingested {len(cost_codes)} cost codes for project {project_id}.")


@app.command("set-baseline")
def set_baseline_cli(
    project_id: str,
    cost_code_id: str,
    rate: float,
    source: BaselineSource = typer.Option(BaselineSource.BID_ESTIMATE, help="Where the rate comes from"),
):
    engine = init_db()
    try:
        baseline = set_baseline(engine, project_id, cost_code_id, rate, source)
    except FieldOpsError as e:
        _fail(e)
    typer.echo(f"Baseline for {cost_code_id} set to {baseline.baseline_unit_rate} ({baseline.source.value}).")


@app.command("establish-baseline")
def establish_baseline_cli(project_id: str, cost_code_id: str, start: str, end: str):
    engine = init_db()
    try:
        baseline = establish_baseline(engine, project_id, cost_code_id, start, end)
    except (FieldOpsError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    if baseline is None:
        typer.echo("Not enough productivity entries in that window; baseline unchanged.")
        return
    _echo_json(baseline.model_dump(mode="json"))


@app.command("recompute-analytics")
def recompute_analytics_cli(
    project_id: str,
    period: list[PeriodType] = typer.Option([PeriodType.PROJECT_TO_DATE], help="Period type(s) to recompute"),
):
    engine = init_db()
    try:
        rows = recompute_analytics(engine, project_id, period)
    except FieldOpsError as e:
        _fail(e)
    typer.echo(f"Recomputed {len(rows)} analytics rows for project {project_id}.")


@app.command("productivity-summary")
def productivity_summary_cli(project_id: str):
    engine = init_db()
    summary = get_productivity_summary(engine, project_id)
    _echo_json(summary.model_dump(mode="json"))


@app.command("causation-chains")
def causation_chains_cli(
    project_id: str,
    filter: ChainFilter = typer.Option(ChainFilter.ALL, "--filter", help="all, with_notices or missing_notices"),
):
    engine = init_db()
    chains = build_causation_chains(engine, project_id)
    _echo_json({
        "statistics": chain_statistics(chains).model_dump(mode="json"),
        "chains": [c.model_dump(mode="json") for c in filter_chains(chains, filter)],
    })


def main():
    app()


if __name__ == "__main__":
    main()
