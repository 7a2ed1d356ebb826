"""
CLI interface for memorybook.

Provides command-line access to storage setup, journaling, generation
and the two HTTP services.
"""

import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from memorybook.config.loader import AppConfig, load_app_config
from memorybook.core.errors import MemorybookError, QuotaExceeded
from memorybook.core.pipeline import GenerationRequest, build_pipeline
from memorybook.core.quota import current_period_start
from memorybook.demo.seed_demo_data import seed_demo_data
from memorybook.storage.repository import SQLiteStore, initialize_schema
from memorybook.utils.logger import configure_logging

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1
EXIT_CODE_QUOTA = 2


def _load_config(ctx: typer.Context) -> AppConfig:
    """Config loaded by the callback, or defaults plus environment."""
    if ctx.obj is None:
        ctx.obj = load_app_config()
    return ctx.obj


def _store(config: AppConfig) -> SQLiteStore:
    return SQLiteStore(config.storage.db_path)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file"
    ),
):
    """memorybook CLI."""
    try:
        ctx.obj = load_app_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Configuration error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)
    configure_logging(ctx.obj.logging.level)

    if ctx.invoked_subcommand is None:
        console.print("memorybook - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the memorybook database."""
    config = _load_config(ctx)
    try:
        initialize_schema(config.storage.db_path)
        console.print(f"[green]✓[/] Database initialized at {config.storage.db_path}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command("add-child")
def add_child(
    ctx: typer.Context,
    user_id: str = typer.Option(..., "--user", "-u", help="Owning user id"),
    name: str = typer.Option(..., "--name", "-n", help="Child's name"),
):
    """Create a child record for a user."""
    config = _load_config(ctx)
    try:
        child = _store(config).create_child(user_id, name)
    except MemorybookError as e:
        console.print(f"[red]Error:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Created child {child.id} ({child.name})")


@app.command("add-memory")
def add_memory(
    ctx: typer.Context,
    child_id: int = typer.Option(..., "--child", help="Child id"),
    note: Optional[str] = typer.Option(None, "--note", help="Free-text note"),
    image_path: Optional[str] = typer.Option(None, "--image", help="Image reference"),
    taken_at: Optional[str] = typer.Option(None, "--taken-at", help="ISO-8601 timestamp"),
):
    """Append a memory for a child."""
    config = _load_config(ctx)
    store = _store(config)
    try:
        if store.get_child(child_id) is None:
            console.print(f"[red]Error:[/] child {child_id} not found")
            sys.exit(EXIT_CODE_FAIL)
        memory = store.add_memory(child_id, note=note, image_path=image_path, taken_at=taken_at)
    except MemorybookError as e:
        console.print(f"[red]Error:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Added memory {memory.id} for child {child_id}")


@app.command("issue-token")
def issue_token(
    ctx: typer.Context,
    user_id: str = typer.Option(..., "--user", "-u", help="User id the token authenticates"),
):
    """Create an API bearer token for a user."""
    config = _load_config(ctx)
    try:
        token = _store(config).issue_token(user_id)
    except MemorybookError as e:
        console.print(f"[red]Error:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(token)


@app.command()
def usage(
    ctx: typer.Context,
    user_id: str = typer.Option(..., "--user", "-u", help="User id"),
):
    """Show this month's generation count for a user."""
    config = _load_config(ctx)
    period_start = current_period_start()
    try:
        row = _store(config).get_usage(user_id, period_start)
    except MemorybookError as e:
        console.print(f"[red]Error:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Monthly usage")
    table.add_column("User")
    table.add_column("Period start")
    table.add_column("Calls", justify="right")
    table.add_column("Quota", justify="right")
    table.add_row(user_id, period_start, str(row.calls if row else 0),
                  str(config.quota.free_monthly_calls))
    console.print(table)


@app.command()
def generate(
    ctx: typer.Context,
    user_id: str = typer.Option(..., "--user", "-u", help="User id to charge"),
    child_id: int = typer.Option(..., "--child", help="Child id"),
    interval: str = typer.Option("monthly", "--interval", "-i", help="Interval label"),
    theme: str = typer.Option("classic", "--theme", "-t", help="classic, fairy or adventure"),
    pdf: bool = typer.Option(False, "--pdf", help="Also render a PDF through the worker"),
    output: Path = typer.Option(Path("storybook.html"), "--output", "-o", help="HTML output file"),
):
    """Generate a storybook locally and write the HTML to a file."""
    config = _load_config(ctx)
    pipeline = build_pipeline(config)
    request = GenerationRequest(child_id=child_id, interval=interval, theme=theme, pdf=pdf)

    try:
        artifact = pipeline.generate(user_id, request)
    except QuotaExceeded as e:
        console.print(f"[bold yellow]{e.message}[/]")
        sys.exit(EXIT_CODE_QUOTA)
    except MemorybookError as e:
        console.print(f"[red]Generation failed ({e.code}) after {e.stage}:[/] {e.message}")
        if e.details:
            console.print(f"[dim]{escape(str(e.details))}[/]")
        sys.exit(EXIT_CODE_FAIL)
    finally:
        pipeline.close()

    output.write_text(artifact.story_html, encoding="utf-8")
    console.print(f"[green]✓[/] Storybook written to {output}")
    if artifact.pdf_url:
        console.print(f"PDF: {artifact.pdf_url}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def serve(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
):
    """Run the HTTP API."""
    import uvicorn

    from memorybook.api.app import create_app

    uvicorn.run(create_app(_load_config(ctx)), host=host, port=port)


@app.command("serve-worker")
def serve_worker(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8080, "--port", "-p", help="Bind port"),
):
    """Run the PDF rendering worker."""
    import uvicorn

    from memorybook.worker.app import create_worker_app

    uvicorn.run(create_worker_app(_load_config(ctx).worker), host=host, port=port)


@app.command("seed-demo")
def seed_demo(ctx: typer.Context):
    """Insert a demo user, child, memories and token."""
    config = _load_config(ctx)
    token = seed_demo_data(config.storage.db_path)
    console.print("[green]✓[/] Demo data inserted")
    console.print(f"Demo bearer token: {token}")


if __name__ == "__main__":
    app()
