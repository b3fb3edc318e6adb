from __future__ import annotations

from pathlib import Path
from typing import Callable

import fitz
import pytest

from pdfpages.core.config import AppPaths, paths_for_public_dir
from pdfpages.infrastructure.storage.document_store import DocumentStore


def _build_pdf(page_count: int) -> bytes:
    doc = fitz.open()
    for number in range(1, page_count + 1):
        page = doc.new_page()
        page.insert_text((72, 72), f"Page {number}")
    data = doc.tobytes()
    doc.close()
    return data


def _read_pdf(data: bytes) -> list[str]:
    doc = fitz.open(stream=data, filetype="pdf")
    try:
        return [page.get_text().strip() for page in doc]
    finally:
        doc.close()


@pytest.fixture
def make_pdf() -> Callable[[int], bytes]:
    return _build_pdf


@pytest.fixture
def read_pdf() -> Callable[[bytes], list[str]]:
    """Return the text of every page of a serialized PDF."""
    return _read_pdf


@pytest.fixture
def paths(tmp_path: Path) -> AppPaths:
    return paths_for_public_dir(tmp_path / "public")


@pytest.fixture
def document_store(paths: AppPaths) -> DocumentStore:
    store = DocumentStore(paths)
    store.ensure_layout()
    return store


@pytest.fixture
def store_pdf(paths: AppPaths) -> Callable[..., str]:
    def _store(name: str, page_count: int = 3, data: bytes | None = None) -> str:
        target = paths.documents_dir / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data if data is not None else _build_pdf(page_count))
        return f"/pdf/{name}"

    return _store
