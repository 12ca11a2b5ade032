"""
Command line interface for Dataset Exporter.
"""

import asyncio
import json
from typing import Optional

import typer

from .config.validation import is_valid_dataset_name
from .exceptions import ExporterError
from .main import run_export
from .workflow.state import StatusTag
from .workflow.status import StatusSink, StatusUpdate

app = typer.Typer(help="Export source data as a Hugging Face dataset")


class EchoStatusSink(StatusSink):
    """Prints status updates to the terminal."""

    def update(self, status: StatusUpdate) -> None:
        err = status.tag is StatusTag.ERROR
        typer.echo(f"[{status.tag.value}] {status.message}", err=err)


@app.command()
def export(
    name: str = typer.Argument(..., help="Dataset name (lowercase letters, digits, '-' and '_')"),
    source_url: Optional[str] = typer.Option(None, "--source-url", help="Source API URL to export from"),
    max_retries: Optional[int] = typer.Option(None, "--max-retries", min=1, help="Attempts before giving up"),
    json_output: bool = typer.Option(False, "--json", help="Print the result as JSON"),
) -> None:
    """Authenticate, export and publish one dataset."""
    try:
        result = asyncio.run(
            run_export(
                name,
                source_url=source_url,
                max_retries=max_retries,
                status_sink=EchoStatusSink(),
            )
        )
    except ExporterError as e:
        typer.echo(e.user_message, err=True)
        raise typer.Exit(code=2)

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    elif result.succeeded:
        typer.echo(f"Dataset available at {result.dataset_url}")

    if not result.succeeded:
        raise typer.Exit(code=1)


@app.command("check-name")
def check_name(name: str = typer.Argument(..., help="Dataset name to check")) -> None:
    """Check a dataset name without exporting anything."""
    if is_valid_dataset_name(name):
        typer.echo(f"'{name}' is a valid dataset name")
        return
    typer.echo(
        "Dataset name must be lowercase alphanumeric with hyphens or underscores",
        err=True,
    )
    raise typer.Exit(code=1)


def main() -> None:
    app()
