from __future__ import annotations

import argparse

from pdfpages.cli.commands._services import as_document_url, resolver_service
from pdfpages.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("info", help="Show page count and pre-split pages of a stored PDF")
    parser.add_argument("pdf_path", help="Document path, e.g. /pdf/report.pdf or report.pdf")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    info = resolver_service(ctx).document_info(as_document_url(args.pdf_path))
    if info.get("isExternal"):
        ctx.console.print(f"[yellow]External document[/yellow] {info.get('url')}")
        return 0
    cached = info.get("preProcessedPages") or []
    ctx.console.print(f"Pages: {info['totalPages']}")
    ctx.console.print(f"Pre-split pages: {len(cached)}")
    return 0
