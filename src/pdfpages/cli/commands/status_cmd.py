from __future__ import annotations

import argparse

from rich.table import Table

from pdfpages.cli.commands._services import document_store
from pdfpages.cli.context import CLIContext
from pdfpages.domain.models.job import JobStatus
from pdfpages.infrastructure.status.status_store import JobStatusStore


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("status", help="Show the decomposition status of a document")
    parser.add_argument("document_id", help="Document identifier (PDF filename without extension)")
    parser.set_defaults(handler=run)


def render_status(ctx: CLIContext, status: JobStatus) -> None:
    if not status.exists:
        ctx.console.print(f"[yellow]No decomposition found for[/yellow] {status.document_id}")
        return

    table = Table(title=f"Decomposition {status.document_id}")
    table.add_column("Field")
    table.add_column("Value", overflow="fold")
    color = {"completed": "green", "failed": "red", "cancelled": "yellow"}.get(status.status, "cyan")
    table.add_row("Status", f"[{color}]{status.status}[/{color}]")
    table.add_row("Pages", f"{status.processed_pages}/{status.total_pages}")
    table.add_row("Failed pages", ", ".join(str(n) for n in status.failed_page_numbers) or "-")
    table.add_row("Generation", str(status.generation))
    table.add_row("Started", status.started_at or "-")
    table.add_row("Updated", status.updated_at or "-")
    if status.completed_at:
        table.add_row("Completed", status.completed_at)
    if status.error:
        table.add_row("Error", status.error)
    ctx.console.print(table)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    store = document_store(ctx)
    store.validate_document_id(args.document_id)
    status = JobStatusStore(store.status_path).read(args.document_id)
    render_status(ctx, status)
    return 0 if status.exists else 1
