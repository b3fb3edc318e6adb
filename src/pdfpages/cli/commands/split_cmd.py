from __future__ import annotations

import argparse

from pdfpages.cli.commands._services import as_document_url, decomposition_service
from pdfpages.cli.commands.status_cmd import render_status
from pdfpages.cli.context import CLIContext
from pdfpages.domain.models.job import STATUS_COMPLETED


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("split", help="Split a stored PDF into single-page PDFs")
    parser.add_argument("pdf_path", help="Document path, e.g. /pdf/report.pdf or report.pdf")
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Return once the job is queued (the process still drains it before exiting)",
    )
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    service = decomposition_service(ctx)
    try:
        result = service.start(as_document_url(args.pdf_path))
        ctx.console.print(f"[green]Started[/green] {result.document_id} (generation {result.generation})")
        if args.no_wait:
            return 0
        with ctx.console.status(f"Splitting {result.document_id}..."):
            status = service.wait(result.document_id)
    finally:
        service.shutdown(wait=True)

    render_status(ctx, status)
    return 0 if status.status == STATUS_COMPLETED else 1
