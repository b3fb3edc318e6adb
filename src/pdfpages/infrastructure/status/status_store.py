from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable

from pdfpages.core.errors import StatusWriteError
from pdfpages.core.files import read_json_object, write_json_atomic
from pdfpages.core.time import now_utc_iso
from pdfpages.domain.models.job import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PROCESSING,
    JobStatus,
)

logger = logging.getLogger(__name__)


class JobStatusStore:
    """JSON status records, one file per document identifier.

    Every mutation is a read-modify-write of the persisted record, staged to a
    temporary file and swapped in with ``os.replace``. Mutators take the
    generation returned by :meth:`initialize`; once a newer generation owns the
    record they become no-ops and return ``False``.
    """

    def __init__(self, status_path_for: Callable[[str], Path]) -> None:
        self._status_path_for = status_path_for
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, document_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(document_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[document_id] = lock
            return lock

    def read(self, document_id: str) -> JobStatus:
        record = read_json_object(self._status_path_for(document_id))
        if record is None:
            return JobStatus.not_found(document_id)
        return JobStatus.from_record(document_id, record)

    def is_current(self, document_id: str, generation: int) -> bool:
        current = self.read(document_id)
        return current.exists and current.generation == generation

    def initialize(self, document_id: str) -> int:
        with self._lock_for(document_id):
            previous = self.read(document_id)
            now = now_utc_iso()
            status = JobStatus(
                document_id=document_id,
                status=STATUS_PROCESSING,
                total_pages=0,
                processed_pages=0,
                started_at=now,
                updated_at=now,
                generation=previous.generation + 1,
            )
            self._write(status)
        return status.generation

    def set_total_pages(self, document_id: str, total_pages: int, *, generation: int) -> bool:
        def apply(status: JobStatus) -> None:
            status.total_pages = max(0, int(total_pages))

        return self._update(document_id, generation, apply)

    def record_page_done(self, document_id: str, page_number: int, *, generation: int) -> bool:
        def apply(status: JobStatus) -> None:
            # Never regress within a generation, even if a retry replays an older page.
            status.processed_pages = max(status.processed_pages, int(page_number))
            if status.total_pages:
                status.processed_pages = min(status.processed_pages, status.total_pages)

        return self._update(document_id, generation, apply)

    def record_page_failed(self, document_id: str, page_number: int, *, generation: int) -> bool:
        def apply(status: JobStatus) -> None:
            if page_number not in status.failed_page_numbers:
                status.failed_page_numbers.append(int(page_number))
                status.failed_page_numbers.sort()

        return self._update(document_id, generation, apply)

    def mark_completed(self, document_id: str, *, generation: int) -> bool:
        def apply(status: JobStatus) -> None:
            status.status = STATUS_COMPLETED
            status.completed_at = status.updated_at
            status.error = None

        return self._update(document_id, generation, apply)

    def mark_failed(self, document_id: str, message: str, *, generation: int) -> bool:
        def apply(status: JobStatus) -> None:
            status.status = STATUS_FAILED
            status.error = message or "Unknown error"
            status.completed_at = None

        return self._update(document_id, generation, apply)

    def mark_cancelled(self, document_id: str, *, generation: int) -> bool:
        def apply(status: JobStatus) -> None:
            status.status = STATUS_CANCELLED
            status.completed_at = None
            status.error = None

        return self._update(document_id, generation, apply)

    def _update(self, document_id: str, generation: int, apply: Callable[[JobStatus], None]) -> bool:
        with self._lock_for(document_id):
            status = self.read(document_id)
            if not status.exists or status.generation != generation:
                logger.debug(
                    "Ignoring stale status write for %s (generation %s, current %s)",
                    document_id,
                    generation,
                    status.generation,
                )
                return False
            status.updated_at = now_utc_iso()
            apply(status)
            self._write(status)
        return True

    def _write(self, status: JobStatus) -> None:
        path = self._status_path_for(status.document_id)
        try:
            write_json_atomic(path, status.to_record())
        except OSError as exc:
            raise StatusWriteError(f"Unable to persist status for {status.document_id}: {exc}") from exc
