from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console

from pdfpages.core.config import AppPaths, RuntimeSettings


@dataclass(slots=True)
class CLIContext:
    paths: AppPaths
    settings: RuntimeSettings
    console: Console
