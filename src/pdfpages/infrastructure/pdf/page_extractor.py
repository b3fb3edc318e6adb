from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any

import fitz  # PyMuPDF

from pdfpages.core.errors import ExtractionError, InvalidPageNumberError
from pdfpages.domain.models.page import PageArtifact

logger = logging.getLogger(__name__)

# MuPDF keeps global context state; calls are serialized process-wide.
_MUPDF_LOCK = threading.RLock()


class LoadedDocument:
    """An independently parsed in-memory copy of a source PDF."""

    def __init__(self, doc: Any, *, name: str = "") -> None:
        self._doc = doc
        self.name = name

    @property
    def page_count(self) -> int:
        with _MUPDF_LOCK:
            return int(self._doc.page_count)

    def close(self) -> None:
        with _MUPDF_LOCK:
            if not self._doc.is_closed:
                self._doc.close()

    def __enter__(self) -> LoadedDocument:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class PageExtractor:
    """Copies pages of a loaded PDF into standalone documents.

    Output is serialized without a fresh trailer ``/ID``, so extracting the
    same page twice yields identical bytes.
    """

    def load_bytes(self, data: bytes, *, name: str = "") -> LoadedDocument:
        try:
            with _MUPDF_LOCK:
                doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise ExtractionError(f"Unable to parse PDF {name or '<bytes>'}: {exc}") from exc
        if not doc.is_pdf:
            doc.close()
            raise ExtractionError(f"Not a PDF document: {name or '<bytes>'}")
        return LoadedDocument(doc, name=name)

    def load_path(self, path: Path) -> LoadedDocument:
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            raise ExtractionError(f"Unable to read PDF {path}: {exc}") from exc
        return self.load_bytes(data, name=Path(path).name)

    def extract_single_page(self, document: LoadedDocument, page_index: int) -> bytes:
        return self._extract(document, page_index, page_index)

    def extract_range(
        self,
        document: LoadedDocument,
        from_page_index: int,
        to_page_index: int,
        *,
        document_id: str = "",
    ) -> list[PageArtifact]:
        if from_page_index > to_page_index:
            raise InvalidPageNumberError(
                f"Invalid page range: {from_page_index + 1}-{to_page_index + 1}"
            )
        artifacts = [
            PageArtifact(
                document_id=document_id,
                page_number=index + 1,
                data=self.extract_single_page(document, index),
            )
            for index in range(from_page_index, to_page_index + 1)
        ]
        artifacts.sort(key=lambda artifact: artifact.page_number)
        return artifacts

    def _extract(self, document: LoadedDocument, from_index: int, to_index: int) -> bytes:
        total = document.page_count
        if from_index < 0 or to_index >= total:
            raise InvalidPageNumberError(
                f"Page index out of range for {document.name or 'document'}: "
                f"{from_index}-{to_index} (pages: {total})"
            )
        try:
            with _MUPDF_LOCK:
                out = fitz.open()
                try:
                    out.insert_pdf(document._doc, from_page=from_index, to_page=to_index)
                    return out.tobytes(garbage=3, deflate=True, no_new_id=True)
                finally:
                    out.close()
        except Exception as exc:
            raise ExtractionError(
                f"Unable to extract page {from_index + 1} of {document.name or 'document'}: {exc}"
            ) from exc

