from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Callable

from pdfpages.application.services.job_registry import JobHandle, JobRegistry
from pdfpages.core.config import DEFAULT_MAX_JOB_WORKERS
from pdfpages.core.errors import (
    DocumentNotFoundError,
    ExtractionError,
    JobLoadError,
    JobNotFoundError,
    StatusWriteError,
)
from pdfpages.domain.models.job import JobStatus
from pdfpages.domain.models.page import DocumentHandle
from pdfpages.infrastructure.pdf.page_extractor import LoadedDocument, PageExtractor
from pdfpages.infrastructure.status.status_store import JobStatusStore
from pdfpages.infrastructure.storage.document_store import DocumentStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StartResult:
    document_id: str
    generation: int
    message: str = "PDF processing started"

    def to_payload(self) -> dict[str, object]:
        return {
            "success": True,
            "documentId": self.document_id,
            "fileId": self.document_id,
            "generation": self.generation,
            "message": self.message,
        }


class _Superseded(Exception):
    pass


class DecompositionService:
    """Splits whole documents into per-page PDFs on a background worker pool.

    Progress is only observable through the status store. Pages are processed
    strictly in ascending order; a failing page is logged and skipped.
    """

    def __init__(
        self,
        *,
        document_store: DocumentStore,
        status_store: JobStatusStore,
        extractor: PageExtractor | None = None,
        registry: JobRegistry | None = None,
        max_workers: int = DEFAULT_MAX_JOB_WORKERS,
    ) -> None:
        self.document_store = document_store
        self.status_store = status_store
        self.extractor = extractor or PageExtractor()
        self.registry = registry or JobRegistry()
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, int(max_workers)),
            thread_name_prefix="pdf-decompose",
        )
        self._closed = False
        # Generation order and registry order must agree.
        self._start_lock = threading.Lock()

    def start(self, document_url: str | None) -> StartResult:
        if not document_url or not str(document_url).strip():
            raise ValueError("Missing pdfPath")
        if self._closed:
            raise RuntimeError("Decomposition service is shut down.")
        handle = self.document_store.open_document(str(document_url).strip())
        self.document_store.ensure_pages_dir(handle.document_id)
        with self._start_lock:
            generation = self.status_store.initialize(handle.document_id)
            job = JobHandle(document_id=handle.document_id, generation=generation)
            self.registry.register(job)
            job.future = self._executor.submit(self._run_job, job, handle)
        logger.info("Started decomposition of %s (generation %s)", handle.document_id, generation)
        return StartResult(document_id=handle.document_id, generation=generation)

    def status(self, document_id: str) -> JobStatus:
        return self.status_store.read(document_id)

    def cancel(self, document_id: str) -> JobStatus:
        job = self.registry.get(document_id)
        if job is None:
            raise JobNotFoundError(f"No job in progress for {document_id}")
        job.cancel_event.set()
        logger.info("Cancellation requested for %s (generation %s)", document_id, job.generation)
        return self.status_store.read(document_id)

    def wait(self, document_id: str, timeout: float | None = None) -> JobStatus:
        job = self.registry.get(document_id)
        if job is not None and job.future is not None:
            try:
                job.future.result(timeout=timeout)
            except FutureTimeoutError:
                logger.warning("Timed out waiting for %s", document_id)
        return self.status_store.read(document_id)

    def shutdown(self, *, cancel: bool = False, wait: bool = True) -> None:
        self._closed = True
        jobs = self.registry.active()
        if cancel:
            for job in jobs:
                job.cancel_event.set()
        self._executor.shutdown(wait=wait, cancel_futures=cancel)
        for job in jobs:
            if job.future is not None and job.future.cancelled():
                # Never started, so no worker will finalize it.
                self._safe_status(
                    job,
                    lambda job=job: self.status_store.mark_cancelled(job.document_id, generation=job.generation),
                )
                self.registry.remove(job.document_id, job.generation)

    def _run_job(self, job: JobHandle, handle: DocumentHandle) -> None:
        document_id = job.document_id
        generation = job.generation
        try:
            try:
                document = self.extractor.load_bytes(
                    self.document_store.read_bytes(handle),
                    name=handle.path.name,
                )
            except (DocumentNotFoundError, ExtractionError) as exc:
                raise JobLoadError(str(exc)) from exc

            with document:
                total_pages = document.page_count
                self._safe_status(
                    job,
                    lambda: self.status_store.set_total_pages(document_id, total_pages, generation=generation),
                )
                for page_index in range(total_pages):
                    self._check_still_wanted(job)
                    self._process_page(job, document, page_index, total_pages)

            self._safe_status(job, lambda: self.status_store.mark_completed(document_id, generation=generation))
            logger.info("PDF processing completed for %s: %s pages", document_id, total_pages)
        except _Superseded:
            if job.cancel_requested and self.registry.get(document_id) is job:
                logger.info("Decomposition of %s cancelled", document_id)
                self._safe_status(job, lambda: self.status_store.mark_cancelled(document_id, generation=generation))
            else:
                logger.info("Decomposition of %s (generation %s) superseded", document_id, generation)
        except JobLoadError as exc:
            logger.error("Unable to load %s for decomposition: %s", document_id, exc)
            self._safe_status(job, lambda: self.status_store.mark_failed(document_id, str(exc), generation=generation))
        except Exception as exc:
            logger.exception("Background decomposition failed: %s", document_id)
            message = str(exc) or type(exc).__name__
            self._safe_status(job, lambda: self.status_store.mark_failed(document_id, message, generation=generation))
        finally:
            self.registry.remove(document_id, generation)

    def _process_page(
        self,
        job: JobHandle,
        document: LoadedDocument,
        page_index: int,
        total_pages: int,
    ) -> None:
        document_id = job.document_id
        generation = job.generation
        page_number = page_index + 1
        try:
            data = self.extractor.extract_single_page(document, page_index)
            self._check_still_wanted(job)
            self.document_store.write_artifact(document_id, page_number, data)
            logger.debug("Processed page %s/%s of %s", page_number, total_pages, document_id)
        except (ExtractionError, OSError):
            logger.exception("Error processing page %s of %s", page_number, document_id)
            self._safe_status(
                job,
                lambda: self.status_store.record_page_failed(document_id, page_number, generation=generation),
            )
        self._safe_status(
            job,
            lambda: self.status_store.record_page_done(document_id, page_number, generation=generation),
        )

    def _check_still_wanted(self, job: JobHandle) -> None:
        if job.cancel_requested:
            raise _Superseded()
        if not self.status_store.is_current(job.document_id, job.generation):
            raise _Superseded()

    def _safe_status(self, job: JobHandle, write: Callable[[], bool]) -> None:
        try:
            written = write()
        except StatusWriteError:
            logger.exception("Failed to update status for %s", job.document_id)
            return
        if written:
            self.registry.notify(job.document_id, job.generation, self.status_store.read(job.document_id))
