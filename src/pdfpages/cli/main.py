from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.console import Console

from pdfpages.cli.commands import info_cmd, page_cmd, split_cmd, status_cmd, web_cmd
from pdfpages.cli.context import CLIContext
from pdfpages.core.config import load_paths, load_runtime_settings
from pdfpages.core.errors import PdfPagesError
from pdfpages.core.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdfpages",
        description="Split PDFs into single pages and serve them",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=Path.cwd(),
        help="Project root holding the public/ document store (default: current working directory)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)

    subparsers = parser.add_subparsers(dest="command", required=True)
    split_cmd.register(subparsers)
    status_cmd.register(subparsers)
    page_cmd.register(subparsers)
    info_cmd.register(subparsers)
    web_cmd.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    console = Console()

    try:
        ctx = CLIContext(
            paths=load_paths(args.project_root),
            settings=load_runtime_settings(),
            console=console,
        )
        handler = getattr(args, "handler", None)
        if handler is None:
            parser.print_help()
            return 2
        return handler(args, ctx)
    except PdfPagesError as exc:
        logger.error(str(exc))
        return 1
