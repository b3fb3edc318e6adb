from __future__ import annotations

import argparse
from pathlib import Path

from pdfpages.cli.commands._services import as_document_url, resolver_service
from pdfpages.cli.context import CLIContext
from pdfpages.core.files import write_bytes_atomic
from pdfpages.domain.models.page import ExternalReference, ResolvedPage


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("page", help="Resolve a page or page range of a stored PDF")
    parser.add_argument("pdf_path", help="Document path, e.g. /pdf/report.pdf or report.pdf")
    parser.add_argument("page_number", type=int, nargs="?", help="1-based page number")
    parser.add_argument("--from", dest="from_page", type=int, help="First page of a range (1-based)")
    parser.add_argument("--to", dest="to_page", type=int, help="Last page of a range (inclusive)")
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Write the page to this file (for ranges: a directory receiving page-<n>.pdf files)",
    )
    parser.set_defaults(handler=run)


def _page_bytes(page: ResolvedPage) -> bytes:
    if page.data is not None:
        return page.data
    if page.path is None:
        raise ValueError(f"Page {page.page_number} has no content")
    return page.path.read_bytes()


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    resolver = resolver_service(ctx)
    document_url = as_document_url(args.pdf_path)

    if args.from_page is not None or args.to_page is not None:
        if args.from_page is None or args.to_page is None:
            ctx.console.print("[red]Both --from and --to are required for a range[/red]")
            return 2
        resolved_range = resolver.resolve_range(document_url, args.from_page, args.to_page)
        if isinstance(resolved_range, ExternalReference):
            ctx.console.print(f"[yellow]External document[/yellow] {resolved_range.url}")
            return 0
        for page in resolved_range.pages:
            source = "cached" if page.is_pre_processed else "extracted"
            ctx.console.print(f"Page {page.page_number}/{resolved_range.total_pages}: {source}")
            if args.output is not None:
                write_bytes_atomic(args.output / f"page-{page.page_number}.pdf", _page_bytes(page))
        return 0

    if args.page_number is None:
        ctx.console.print("[red]Missing page number or page range[/red]")
        return 2

    resolved = resolver.resolve_page(document_url, args.page_number)
    if isinstance(resolved, ExternalReference):
        ctx.console.print(f"[yellow]External document[/yellow] {resolved.url}")
        return 0
    if resolved.is_pre_processed:
        ctx.console.print(f"[green]Cached[/green] {resolved.url}")
    else:
        ctx.console.print(f"[cyan]Extracted on demand[/cyan] page {resolved.page_number}")
    if args.output is not None:
        write_bytes_atomic(args.output, _page_bytes(resolved))
        ctx.console.print(f"[green]Wrote[/green] {args.output}")
    return 0
