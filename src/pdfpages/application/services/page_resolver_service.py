from __future__ import annotations

import logging
from pathlib import Path

from pdfpages.core.errors import InvalidPageNumberError, InvalidRangeError
from pdfpages.domain.models.page import (
    DocumentHandle,
    ExternalReference,
    ResolvedPage,
    ResolvedRange,
)
from pdfpages.infrastructure.pdf.page_extractor import LoadedDocument, PageExtractor
from pdfpages.infrastructure.storage.document_store import DocumentStore

logger = logging.getLogger(__name__)


class PageResolverService:
    """Serves pages from pre-split artifacts, extracting on demand on a miss.

    On-demand extractions are returned inline and never written back, so this
    service only ever reads the artifact directory.
    """

    def __init__(self, *, document_store: DocumentStore, extractor: PageExtractor | None = None) -> None:
        self.document_store = document_store
        self.extractor = extractor or PageExtractor()

    def resolve_page(self, document_url: str, page_number: int) -> ResolvedPage | ExternalReference:
        if not self.document_store.is_local(document_url):
            return ExternalReference(url=str(document_url or ""))

        handle = self.document_store.open_document(document_url)
        with self._load(handle) as document:
            total_pages = document.page_count
            page = _coerce_page(page_number, "pageNumber")
            if page < 1 or page > total_pages:
                raise InvalidPageNumberError(
                    f"Invalid page number: {page} (document has {total_pages} pages)"
                )

            if self.document_store.has_artifact(handle.document_id, page):
                return self._cached(handle, page)

            logger.debug("Cache miss for %s page %s; extracting on demand", handle.document_id, page)
            return ResolvedPage.from_extraction(page, self.extractor.extract_single_page(document, page - 1))

    def resolve_range(
        self,
        document_url: str,
        from_page: int,
        to_page: int,
    ) -> ResolvedRange | ExternalReference:
        if not self.document_store.is_local(document_url):
            return ExternalReference(url=str(document_url or ""))

        handle = self.document_store.open_document(document_url)
        with self._load(handle) as document:
            total_pages = document.page_count
            first = _coerce_page(from_page, "fromPage")
            last = _coerce_page(to_page, "toPage")
            if first < 1 or last < 1 or first > total_pages or last > total_pages or first > last:
                raise InvalidRangeError(
                    f"Invalid page range: {first}-{last} (document has {total_pages} pages)"
                )

            pages: list[ResolvedPage] = []
            missing: list[int] = []
            for page in range(first, last + 1):
                if self.document_store.has_artifact(handle.document_id, page):
                    pages.append(self._cached(handle, page))
                else:
                    missing.append(page)

            for run_start, run_end in _contiguous_runs(missing):
                for artifact in self.extractor.extract_range(
                    document,
                    run_start - 1,
                    run_end - 1,
                    document_id=handle.document_id,
                ):
                    pages.append(ResolvedPage.from_extraction(artifact.page_number, artifact.data))

        pages.sort(key=lambda resolved: resolved.page_number)
        if missing:
            logger.debug(
                "Range %s-%s of %s: %s cached, %s extracted",
                first,
                last,
                handle.document_id,
                len(pages) - len(missing),
                len(missing),
            )
        return ResolvedRange(pages=pages, total_pages=total_pages, from_page=first, to_page=last)

    def document_info(self, document_url: str) -> dict[str, object]:
        if not self.document_store.is_local(document_url):
            return {"totalPages": None, "isExternal": True, "url": document_url}
        handle = self.document_store.open_document(document_url)
        with self._load(handle) as document:
            total_pages = document.page_count
        return {
            "totalPages": total_pages,
            "isExternal": False,
            "documentId": handle.document_id,
            "preProcessedPages": self.document_store.list_artifact_pages(handle.document_id),
        }

    def artifact_path(self, document_id: str, name: str) -> Path:
        return self.document_store.artifact_abspath(document_id, name)

    def _cached(self, handle: DocumentHandle, page: int) -> ResolvedPage:
        return ResolvedPage.from_cache(
            page,
            self.document_store.artifact_url(handle.document_id, page),
            self.document_store.artifact_path(handle.document_id, page),
        )

    def _load(self, handle: DocumentHandle) -> LoadedDocument:
        return self.extractor.load_bytes(self.document_store.read_bytes(handle), name=handle.path.name)


def _coerce_page(value: object, field_name: str) -> int:
    if value is None or isinstance(value, bool):
        raise InvalidPageNumberError(f"Missing or invalid {field_name}")
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise InvalidPageNumberError(f"Invalid {field_name}: {value!r}") from exc


def _contiguous_runs(pages: list[int]) -> list[tuple[int, int]]:
    runs: list[tuple[int, int]] = []
    for page in sorted(pages):
        if runs and runs[-1][1] == page - 1:
            runs[-1] = (runs[-1][0], page)
        else:
            runs.append((page, page))
    return runs
