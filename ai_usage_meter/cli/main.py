"""
CLI interface for AI Usage Meter.

Provides command-line access to completions, usage reports and job queues.
"""

import json
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ai_usage_meter.admin.reports import (
    queue_job_report,
    queue_jobs_report,
    queue_summaries_report,
    recent_logs_report,
    usage_summary_report,
)
from ai_usage_meter.config.loader import Settings, load_settings
from ai_usage_meter.jobs.processors.test_processor import TestJobData
from ai_usage_meter.jobs.queues import TEST_QUEUE
from ai_usage_meter.jobs.worker import enqueue, start_worker
from ai_usage_meter.logging_setup import configure_logging
from ai_usage_meter.services import Services, build_services
from ai_usage_meter.storage.repository import initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a YAML settings file"
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level"),
    log_json: bool = typer.Option(False, "--log-json", help="Emit logs as JSON")
):
    """AI Usage Meter CLI."""
    configure_logging(log_level, json=log_json)
    ctx.obj = {"config": config}
    if ctx.invoked_subcommand is None:
        console.print("AI Usage Meter - Use --help to see available commands")


def _settings(ctx: typer.Context) -> Settings:
    return load_settings((ctx.obj or {}).get("config"))


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/] {message}")
    sys.exit(EXIT_CODE_FAIL)


def _print_json(payload) -> None:
    console.print_json(json.dumps(payload))


@app.command()
def init(ctx: typer.Context):
    """Initialize the usage log database."""
    try:
        initialize_schema(_settings(ctx).storage.db_path)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def complete(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="Prompt to send"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model identifier"),
    schema: Optional[str] = typer.Option(
        None,
        "--schema",
        "-s",
        help="Path to a JSON schema the response must follow"
    ),
    temperature: Optional[float] = typer.Option(None, "--temperature", "-t"),
    max_tokens: Optional[int] = typer.Option(None, "--max-tokens")
):
    """Send a prompt and show the response with its usage and cost."""
    services: Optional[Services] = None
    try:
        json_schema = None
        if schema:
            with open(schema, 'r', encoding='utf-8') as f:
                json_schema = json.load(f)

        services = build_services(_settings(ctx))
        result = services.openrouter.complete(
            prompt,
            model=model,
            json_schema=json_schema,
            temperature=temperature,
            max_tokens=max_tokens
        )
    except Exception as e:
        _fail(str(e))
    finally:
        if services is not None:
            services.close()

    console.print("\n[bold]Response[/bold]")
    if isinstance(result.data, str):
        console.print(result.data)
    else:
        _print_json(result.data)
    _display_usage(result.model, result.usage, result.cost)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def stream(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="Prompt to send"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model identifier"),
    temperature: Optional[float] = typer.Option(None, "--temperature", "-t"),
    max_tokens: Optional[int] = typer.Option(None, "--max-tokens")
):
    """Stream a completion to the terminal as it is generated."""
    services: Optional[Services] = None
    try:
        services = build_services(_settings(ctx))
        chosen_model = model or services.openrouter.default_model
        events = services.openrouter.stream(
            prompt,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens
        )
        for event in events:
            if event.type == "content":
                console.print(event.content, end="", markup=False, highlight=False)
            elif event.type == "complete":
                console.print("\n\n--- Streaming complete ---")
                _display_usage(chosen_model, event.usage, event.cost)
    except Exception as e:
        _fail(str(e))
    finally:
        if services is not None:
            services.close()
    sys.exit(EXIT_CODE_PASS)


@app.command()
def logs(
    ctx: typer.Context,
    limit: int = typer.Option(50, "--limit", "-n", help="Number of calls to show"),
    as_json: bool = typer.Option(False, "--json", help="Print the admin JSON envelope")
):
    """Show the most recent completion calls."""
    try:
        report = recent_logs_report(_settings(ctx).storage.db_path, limit=limit)
    except Exception as e:
        _fail(str(e))

    if as_json:
        _print_json(report)
        sys.exit(EXIT_CODE_PASS)

    if not report["data"]:
        console.print("\n[bold yellow]No completion calls logged yet[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Recent completion calls")
    table.add_column("Time")
    table.add_column("Model")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Cost", justify="right")
    for log in report["data"]:
        table.add_row(
            log["createdAt"] or "",
            log["model"],
            str(log["inputTokens"]),
            str(log["outputTokens"]),
            str(log["totalTokens"]),
            _format_currency(float(log["totalCost"]))
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def usage(
    ctx: typer.Context,
    days: int = typer.Option(7, "--days", "-d", help="Days to include"),
    as_json: bool = typer.Option(False, "--json", help="Print the admin JSON envelope")
):
    """Summarise calls, tokens and cost over recent days."""
    try:
        report = usage_summary_report(_settings(ctx).storage.db_path, days=days)
    except Exception as e:
        _fail(str(e))

    if not report["success"]:
        _fail(report["error"]["message"])

    if as_json:
        _print_json(report)
        sys.exit(EXIT_CODE_PASS)

    summary = report["data"]
    console.print(f"\n[bold]Usage over the last {days} day(s)[/bold]")
    console.print("-" * 40)
    console.print(f"Calls: {summary['totalCalls']:,}")
    console.print(f"Tokens: {summary['totalTokens']:,}")
    console.print(f"Cost: {_format_currency(summary['totalCost'])}")

    if summary["modelUsage"]:
        table = Table(title="By model")
        table.add_column("Model")
        table.add_column("Calls", justify="right")
        table.add_column("Tokens", justify="right")
        table.add_column("Cost", justify="right")
        for model in summary["modelUsage"]:
            table.add_row(
                model["model"],
                str(model["calls"]),
                f"{model['totalTokens']:,}",
                _format_currency(model["totalCost"])
            )
        console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def queues(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print the admin JSON envelope")
):
    """Show job counts for every queue."""
    services: Optional[Services] = None
    try:
        services = build_services(_settings(ctx))
        report = queue_summaries_report(services.queue_monitor)
    except Exception as e:
        _fail(str(e))
    finally:
        if services is not None:
            services.close()

    if as_json:
        _print_json(report)
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Queues")
    table.add_column("Queue")
    for status in ("waiting", "active", "completed", "failed", "delayed", "paused"):
        table.add_column(status.capitalize(), justify="right")
    for summary in report["data"]:
        counts = summary["counts"]
        table.add_row(
            summary["name"],
            *(str(counts[status]) for status in
              ("waiting", "active", "completed", "failed", "delayed", "paused"))
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def jobs(
    ctx: typer.Context,
    queue_name: str = typer.Argument(..., help="Queue to list jobs from"),
    status: Optional[str] = typer.Option(
        None,
        "--status",
        "-s",
        help="Only show jobs in this status (waiting, active, completed, failed, delayed, paused)"
    ),
    limit: int = typer.Option(100, "--limit", "-n", help="Number of jobs to show"),
    as_json: bool = typer.Option(False, "--json", help="Print the admin JSON envelope")
):
    """List the most recent jobs of a queue."""
    services: Optional[Services] = None
    try:
        services = build_services(_settings(ctx))
        report = queue_jobs_report(services.queue_monitor, queue_name, status=status, limit=limit)
    except Exception as e:
        _fail(str(e))
    finally:
        if services is not None:
            services.close()

    if as_json:
        _print_json(report)
        sys.exit(EXIT_CODE_PASS if report["success"] else EXIT_CODE_FAIL)

    if not report["success"]:
        _fail(report["error"]["message"])

    if not report["data"]:
        console.print(f"\n[bold yellow]No jobs recorded for \"{queue_name}\"[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title=f"Jobs in {queue_name}")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Added")
    table.add_column("Finished")
    table.add_column("Attempts", justify="right")
    table.add_column("Failed reason")
    for entry in report["data"]:
        table.add_row(
            entry["id"],
            entry["name"] or "",
            entry["status"] or "",
            entry["timestamp"] or "",
            entry["finishedOn"] or "",
            str(entry["attemptsMade"]),
            entry["failedReason"] or ""
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def job(
    ctx: typer.Context,
    queue_name: str = typer.Argument(..., help="Queue the job was added to"),
    job_id: str = typer.Argument(..., help="Job id")
):
    """Show the status of a single job."""
    services: Optional[Services] = None
    try:
        services = build_services(_settings(ctx))
        report = queue_job_report(services.queue_monitor, queue_name, job_id)
    except Exception as e:
        _fail(str(e))
    finally:
        if services is not None:
            services.close()

    _print_json(report)
    sys.exit(EXIT_CODE_PASS if report["success"] else EXIT_CODE_FAIL)


@app.command("enqueue-test")
def enqueue_test(
    ctx: typer.Context,
    user_id: str = typer.Option(..., "--user-id", help="User id"),
    email: str = typer.Option(..., "--email", help="User email"),
    first_name: Optional[str] = typer.Option(None, "--first-name"),
    last_name: Optional[str] = typer.Option(None, "--last-name")
):
    """Add a job to the test queue."""
    services: Optional[Services] = None
    try:
        payload = TestJobData(
            user_id=user_id,
            email=email,
            first_name=first_name,
            last_name=last_name
        )
        services = build_services(_settings(ctx))
        job_id = enqueue(
            services.celery_app,
            TEST_QUEUE.name,
            payload,
            tracker=services.job_tracker
        )
    except Exception as e:
        _fail(str(e))
    finally:
        if services is not None:
            services.close()

    console.print(f"[green]✓[/] Queued job {job_id} to \"{TEST_QUEUE.name}\"")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def worker(
    ctx: typer.Context,
    queue: str = typer.Option(TEST_QUEUE.name, "--queue", "-q", help="Queue to process")
):
    """Run a worker for one queue until interrupted."""
    services: Optional[Services] = None
    try:
        services = build_services(_settings(ctx))
        start_worker(services.celery_app, queue)
    except Exception as e:
        _fail(str(e))
    finally:
        if services is not None:
            services.close()
    sys.exit(EXIT_CODE_PASS)


def _format_currency(amount: float) -> str:
    """Format a USD amount; per-call costs need sub-cent precision."""
    return f"${amount:,.6f}"


def _display_usage(model, token_usage, cost) -> None:
    """Display token usage and cost of a call."""
    console.print(f"\n[bold]Model:[/bold] {model}")
    console.print(f"Input tokens: {token_usage.input_tokens:,}")
    console.print(f"Output tokens: {token_usage.output_tokens:,}")
    console.print(f"Total tokens: {token_usage.total_tokens:,}")
    console.print(f"Input cost: {_format_currency(cost.input_cost)}")
    console.print(f"Output cost: {_format_currency(cost.output_cost)}")
    console.print(f"Total cost: {_format_currency(cost.total_cost)}")


if __name__ == "__main__":
    app()
