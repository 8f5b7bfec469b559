"""Typer CLI for the region sink."""

from __future__ import annotations

import json
from pathlib import Path

import structlog
import typer
from rich.console import Console
from rich.table import Table

from region_sink.config.loader import load_sink_config
from region_sink.config.models import SinkConfig
from region_sink.core.records import ChangeRecord
from region_sink.errors import SinkError
from region_sink.observability.health import Status, check_sink_health
from region_sink.observability.logs import configure_logging
from region_sink.sink.task import RegionSinkTask
from region_sink.store.memory import InMemoryStore, InMemoryStoreClient
from region_sink.streaming.consumer import canonical_key

logger = structlog.get_logger()
console = Console()
app = typer.Typer(name="region-sink", help="Kafka → key-value region sink")


@app.callback()
def main(
    log_level: str = typer.Option("INFO", "--log-level", help="Log level"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON logs"),
) -> None:
    configure_logging(log_level, json_output=json_logs)


def _load(config_path: str) -> SinkConfig:
    path = Path(config_path)
    if not path.exists():
        console.print(f"[red]Config file not found: {path}[/red]")
        raise typer.Exit(1)
    return load_sink_config(path)


def _read_records(path: Path) -> list[ChangeRecord]:
    """Read a JSON-lines file of ``{"topic", "key", "value"}`` objects."""
    records: list[ChangeRecord] = []
    with path.open() as f:
        for lineno, line in enumerate(f, start=1):
            if not line.strip():
                continue
            data = json.loads(line)
            records.append(
                ChangeRecord(
                    topic=data["topic"],
                    key=canonical_key(data.get("key")),
                    value=data.get("value"),
                    partition=data.get("partition"),
                    offset=data.get("offset", lineno),
                )
            )
    return records


@app.command()
def validate(
    config_path: str = typer.Argument(..., help="Path to sink YAML"),
) -> None:
    """Validate a sink configuration file."""
    try:
        config = _load(config_path)
    except (SinkError, ValueError) as exc:
        console.print(f"[red]Validation error:[/red] {exc}")
        raise typer.Exit(1) from exc

    console.print(f"[green]Valid[/green] — {config.name} (task {config.task_id})")
    console.print(f"  kafka: {config.kafka.bootstrap_servers}")
    console.print(f"  store: {config.store.store_type}")
    policy = "remove" if config.null_value_means_remove else "upsert null"
    console.print(f"  null values: {policy}")
    for topic, destinations in config.topic_to_destinations.items():
        console.print(f"    - {topic} → {', '.join(destinations)}")


@app.command()
def health(
    config_path: str = typer.Argument(..., help="Path to sink YAML"),
) -> None:
    """Check Kafka and store connectivity."""
    config = _load(config_path)
    result = check_sink_health(config)

    table = Table(title="Sink Health")
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")

    for c in result.components:
        style = "green" if c.status == Status.HEALTHY else "red"
        table.add_row(c.name, f"[{style}]{c.status}[/{style}]", c.detail)

    console.print(table)
    if not result.healthy:
        raise typer.Exit(1)


@app.command()
def run(
    config_path: str = typer.Argument(..., help="Path to sink YAML"),
) -> None:
    """Consume from Kafka and apply changes to the store until stopped."""
    config = _load(config_path)

    from region_sink.pipeline.runner import SinkRunner

    console.print(f"[yellow]Starting sink:[/yellow] {config.name} task {config.task_id}")
    runner = SinkRunner(config)
    try:
        runner.run()
    except KeyboardInterrupt:
        runner.stop()
    except SinkError as exc:
        console.print(f"[red]Sink failed:[/red] {exc}")
        raise typer.Exit(1) from exc


@app.command()
def replay(
    config_path: str = typer.Argument(..., help="Path to sink YAML"),
    records_path: str = typer.Argument(..., help="JSON-lines file of records"),
    live: bool = typer.Option(
        False, "--live", help="Apply to the configured store instead of memory"
    ),
) -> None:
    """Apply a file of records as a single invocation."""
    config = _load(config_path)
    path = Path(records_path)
    if not path.exists():
        console.print(f"[red]Records file not found: {path}[/red]")
        raise typer.Exit(1)
    records = _read_records(path)

    store = InMemoryStore()
    task = RegionSinkTask(config, client=None if live else InMemoryStoreClient(store))
    try:
        task.start()
        task.put(records)
    except SinkError as exc:
        console.print(f"[red]Replay failed:[/red] {exc}")
        raise typer.Exit(1) from exc
    finally:
        task.stop()

    console.print(f"[green]Applied[/green] {len(records)} record(s)")
    if live:
        return

    table = Table(title="Store contents")
    table.add_column("Region", style="cyan")
    table.add_column("Key")
    table.add_column("Value")
    for region in store.region_names():
        for key, value in store.snapshot(region).items():
            table.add_row(region, str(key), json.dumps(value))
    console.print(table)
