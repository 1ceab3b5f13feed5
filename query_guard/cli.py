"""Command-line interface for the query guard."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional
import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .client import GuardedClient
from .config import QueryGuardConfig
from .errors import QueryBlocked
from .guard import QueryGuard
from .mock_client import ScriptedClient

app = typer.Typer(
    name="query-guard",
    help="Failure guard for repeated queries"
)
console = Console()

SANDBOX_URL = "https://sandbox.invalid/probe"


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Log level for query_guard messages"),
):
    """Configure logging for all commands."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def load_config(config_path: str) -> QueryGuardConfig:
    """Load configuration from JSON file."""
    config_file = Path(config_path)
    if not config_file.exists():
        console.print(f"[red]Error: Config file not found: {config_path}[/red]")
        raise typer.Exit(1)

    with open(config_file) as f:
        config_data = json.load(f)

    return QueryGuardConfig(**config_data)


@app.command()
def init(
    output: str = typer.Option("config.json", help="Output configuration file path")
):
    """Initialize a new configuration file with example values."""
    example_config = QueryGuardConfig.model_config["json_schema_extra"]["example"]

    output_path = Path(output)
    with open(output_path, 'w') as f:
        json.dump(example_config, f, indent=2)

    console.print(f"[green]✓[/green] Configuration file created: {output}")


@app.command()
def validate(
    config: str = typer.Option("config.json", help="Configuration file path"),
):
    """Validate configuration file."""
    try:
        cfg = load_config(config)
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]✗ Configuration error:[/red] {str(e)}")
        raise typer.Exit(1)

    console.print("[green]✓[/green] Configuration is valid!")
    console.print(f"\n[bold]Failure threshold:[/bold] {cfg.guard.failure_threshold}")
    console.print(f"[bold]Block duration:[/bold] {cfg.guard.block_duration_ms}ms")
    console.print(f"[bold]Max entries:[/bold] {cfg.guard.max_entries or 'unbounded'}")
    console.print(f"[bold]Single probe:[/bold] {cfg.guard.single_probe}")
    console.print(f"[bold]Max retries:[/bold] {cfg.retry.max_retries}")


@app.command()
def probe(
    url: Optional[str] = typer.Argument(None, help="URL to request (omit with --sandbox)"),
    config: Optional[str] = typer.Option(None, help="Configuration file path"),
    key: Optional[str] = typer.Option(None, help="Query key (defaults to the URL)"),
    attempts: int = typer.Option(5, min=1, help="Number of guarded requests to make"),
    interval: float = typer.Option(0.0, min=0.0, help="Seconds to wait between requests"),
    retry: bool = typer.Option(False, help="Retry failed requests per the retry policy"),
    sandbox: bool = typer.Option(False, help="Use a scripted client instead of the network"),
    sandbox_failures: int = typer.Option(3, min=0, help="Failures the sandbox returns before succeeding"),
):
    """Send repeated guarded requests and show how the guard reacts."""
    if url is None and not sandbox:
        console.print("[red]Error: Provide a URL or use --sandbox.[/red]")
        raise typer.Exit(1)

    cfg = load_config(config) if config else QueryGuardConfig()
    if not retry:
        cfg = cfg.model_copy(
            update={"retry": cfg.retry.model_copy(update={"max_retries": 0, "max_server_error_retries": 0})}
        )
    target = url or SANDBOX_URL
    query_key = [key or target]

    async def _probe():
        guard = QueryGuard(cfg.guard)
        client = ScriptedClient.failing_then_ok(sandbox_failures) if sandbox else None

        table = Table(title=f"Probing {target}")
        table.add_column("#", justify="right", style="cyan")
        table.add_column("Outcome", style="green")
        table.add_column("Guard", style="yellow")
        table.add_column("Failures", justify="right", style="magenta")
        table.add_column("Retry after", justify="right")

        async with GuardedClient(guard, cfg, client=client) as guarded:
            for attempt in range(1, attempts + 1):
                try:
                    response = await guarded.get(query_key, target)
                    outcome = f"ok {response.status_code}"
                except QueryBlocked:
                    outcome = "[yellow]blocked[/yellow]"
                except httpx.HTTPStatusError as exc:
                    outcome = f"[red]failed {exc.response.status_code}[/red]"
                except httpx.RequestError as exc:
                    outcome = f"[red]failed {type(exc).__name__}[/red]"

                snapshot = guard.inspect(query_key)
                table.add_row(
                    str(attempt),
                    outcome,
                    snapshot.status.value,
                    str(snapshot.consecutive_failures),
                    f"{snapshot.retry_after_ms / 1000:.1f}s",
                )
                if interval and attempt < attempts:
                    await asyncio.sleep(interval)

        console.print(table)

    asyncio.run(_probe())


@app.command()
def serve(
    config: Optional[str] = typer.Option(None, help="Configuration file path"),
    host: str = typer.Option("127.0.0.1", help="Host to bind to"),
    port: int = typer.Option(8000, help="Port to bind to"),
):
    """Start a server exposing the guard debugging endpoints."""
    from .router import create_app
    from .telemetry import init_metrics
    import uvicorn

    cfg = load_config(config) if config else QueryGuardConfig()
    init_metrics()
    guard_app = create_app(cfg)

    console.print(f"[green]Starting guard server on {host}:{port}[/green]")
    console.print(f"[blue]Inspect keys: http://{host}:{port}/guard/keys[/blue]")

    uvicorn.run(guard_app, host=host, port=port, log_level=cfg.log_level.lower())


if __name__ == "__main__":
    app()
