from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from pdfpages.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PUBLIC_DIRNAME = "public"
DOCUMENTS_DIRNAME = "pdf"
PAGES_DIRNAME = "pdf-pages"
LOCAL_DOCUMENT_PREFIX = f"/{DOCUMENTS_DIRNAME}/"

DEFAULT_MAX_JOB_WORKERS = 2


@dataclass(frozen=True)
class AppPaths:
    project_root: Path
    public_dir: Path
    documents_dir: Path
    pages_dir: Path


@dataclass(frozen=True)
class RuntimeSettings:
    max_job_workers: int = DEFAULT_MAX_JOB_WORKERS


def load_paths(project_root: Path | None = None) -> AppPaths:
    root = (project_root or Path.cwd()).expanduser().resolve()

    public_raw = os.getenv("PDFPAGES_PUBLIC_DIR")
    if public_raw:
        public_dir = Path(public_raw).expanduser().resolve()
    else:
        public_dir = root / DEFAULT_PUBLIC_DIRNAME

    return paths_for_public_dir(public_dir, project_root=root)


def paths_for_public_dir(public_dir: Path, *, project_root: Path | None = None) -> AppPaths:
    return AppPaths(
        project_root=project_root or public_dir.parent,
        public_dir=public_dir,
        documents_dir=public_dir / DOCUMENTS_DIRNAME,
        pages_dir=public_dir / PAGES_DIRNAME,
    )


def load_runtime_settings() -> RuntimeSettings:
    return RuntimeSettings(
        max_job_workers=_env_positive_int("PDFPAGES_MAX_JOB_WORKERS", default=DEFAULT_MAX_JOB_WORKERS),
    )


def _env_positive_int(name: str, *, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 1:
        logger.warning("%s=%s is below 1; using %s", name, value, default)
        return default
    return value
