from __future__ import annotations

import threading
from pathlib import Path

import pytest

from pdfpages.application.services.decomposition_service import DecompositionService
from pdfpages.application.services.job_registry import JobHandle, JobRegistry
from pdfpages.application.services.page_resolver_service import PageResolverService
from pdfpages.core.errors import DocumentNotFoundError, ExtractionError, JobNotFoundError, StatusWriteError
from pdfpages.domain.models.job import JobStatus
from pdfpages.infrastructure.pdf.page_extractor import LoadedDocument, PageExtractor
from pdfpages.infrastructure.status.status_store import JobStatusStore
from pdfpages.infrastructure.storage.document_store import DocumentStore


class RecordingStatusStore(JobStatusStore):
    def __init__(self, status_path_for) -> None:  # noqa: ANN001
        super().__init__(status_path_for)
        self.writes: list[JobStatus] = []

    def _write(self, status: JobStatus) -> None:
        super()._write(status)
        self.writes.append(JobStatus.from_record(status.document_id, status.to_record()))


class GatedExtractor(PageExtractor):
    """Blocks the first extraction until released."""

    def __init__(self) -> None:
        self.started = threading.Event()
        self.release = threading.Event()
        self._calls = 0

    def extract_single_page(self, document: LoadedDocument, page_index: int) -> bytes:
        self._calls += 1
        if self._calls == 1:
            self.started.set()
            assert self.release.wait(timeout=10)
        return super().extract_single_page(document, page_index)


class FailingPageExtractor(PageExtractor):
    def __init__(self, failing_index: int) -> None:
        self.failing_index = failing_index

    def extract_single_page(self, document: LoadedDocument, page_index: int) -> bytes:
        if page_index == self.failing_index:
            raise ExtractionError(f"cannot copy page {page_index + 1}")
        return super().extract_single_page(document, page_index)


class FlakyStatusStore(JobStatusStore):
    """Fails the first page-done write, then behaves normally."""

    def __init__(self, status_path_for) -> None:  # noqa: ANN001
        super().__init__(status_path_for)
        self.failures = 0

    def record_page_done(self, document_id: str, page_number: int, *, generation: int) -> bool:
        if self.failures == 0:
            self.failures += 1
            raise StatusWriteError(f"disk full while recording page {page_number}")
        return super().record_page_done(document_id, page_number, generation=generation)


class SlowFirstRegistry(JobRegistry):
    """Holds the first registration until another start has had a chance to run."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.other_start_done = threading.Event()
        self._calls = 0

    def register(self, handle: JobHandle) -> JobHandle | None:
        self._calls += 1
        if self._calls == 1:
            self.entered.set()
            self.other_start_done.wait(timeout=1)
        return super().register(handle)


def _service(
    document_store: DocumentStore,
    extractor: PageExtractor | None = None,
    *,
    status_store: JobStatusStore | None = None,
    registry: JobRegistry | None = None,
    max_workers: int = 2,
) -> tuple[DecompositionService, JobStatusStore]:
    status_store = status_store or RecordingStatusStore(document_store.status_path)
    service = DecompositionService(
        document_store=document_store,
        status_store=status_store,
        extractor=extractor,
        registry=registry,
        max_workers=max_workers,
    )
    return service, status_store


def test_three_page_document_is_fully_split(document_store, store_pdf, read_pdf) -> None:  # noqa: ANN001
    url = store_pdf("abc123.pdf", page_count=3)
    service, _ = _service(document_store)
    try:
        result = service.start(url)
        assert result.document_id == "abc123"
        assert result.to_payload()["success"] is True
        status = service.wait(result.document_id, timeout=30)
    finally:
        service.shutdown()

    assert status.status == "completed"
    assert status.total_pages == 3
    assert status.processed_pages == 3
    assert status.failed_pages == 0
    assert status.completed_at is not None
    assert document_store.list_artifact_pages("abc123") == [1, 2, 3]
    for page in (1, 2, 3):
        data = document_store.artifact_path("abc123", page).read_bytes()
        assert read_pdf(data) == [f"Page {page}"]


def test_status_shows_processing_while_job_runs(document_store, store_pdf) -> None:  # noqa: ANN001
    url = store_pdf("slow.pdf", page_count=3)
    extractor = GatedExtractor()
    service, _ = _service(document_store, extractor)
    try:
        service.start(url)
        assert extractor.started.wait(timeout=10)
        status = service.status("slow")
        assert status.status == "processing"
        assert status.total_pages == 3
        assert status.processed_pages == 0
        extractor.release.set()
        assert service.wait("slow", timeout=30).status == "completed"
    finally:
        extractor.release.set()
        service.shutdown()


def test_processed_pages_never_decrease_during_a_job(document_store, store_pdf) -> None:  # noqa: ANN001
    url = store_pdf("mono.pdf", page_count=5)
    service, status_store = _service(document_store)
    try:
        service.start(url)
        service.wait("mono", timeout=30)
    finally:
        service.shutdown()

    observed = [write.processed_pages for write in status_store.writes]
    assert observed == sorted(observed)
    assert observed[-1] == 5
    assert all(write.processed_pages <= write.total_pages for write in status_store.writes if write.total_pages)


def test_corrupt_source_marks_job_failed(document_store, store_pdf) -> None:  # noqa: ANN001
    url = store_pdf("corrupt.pdf", data=b"definitely not a pdf")
    service, _ = _service(document_store)
    try:
        service.start(url)
        status = service.wait("corrupt", timeout=30)
    finally:
        service.shutdown()

    assert status.status == "failed"
    assert status.error
    assert status.processed_pages == 0
    assert status.completed_at is None
    assert document_store.list_artifact_pages("corrupt") == []


def test_page_failure_is_contained(document_store, store_pdf, read_pdf) -> None:  # noqa: ANN001
    url = store_pdf("gappy.pdf", page_count=3)
    service, _ = _service(document_store, FailingPageExtractor(failing_index=1))
    try:
        service.start(url)
        status = service.wait("gappy", timeout=30)
    finally:
        service.shutdown()

    assert status.status == "completed"
    assert status.processed_pages == 3
    assert status.failed_page_numbers == [2]
    assert status.to_record()["failedPages"] == 1
    assert document_store.list_artifact_pages("gappy") == [1, 3]

    # The missing page still resolves through on-demand extraction.
    resolved = PageResolverService(document_store=document_store).resolve_page(url, 2)
    assert not resolved.is_pre_processed
    assert read_pdf(resolved.data) == ["Page 2"]


def test_back_to_back_starts_keep_one_consistent_record(document_store, store_pdf) -> None:  # noqa: ANN001
    url = store_pdf("twice.pdf", page_count=3)
    extractor = GatedExtractor()
    service, status_store = _service(document_store, extractor)
    try:
        first = service.start(url)
        assert extractor.started.wait(timeout=10)
        second = service.start(url)
        assert second.generation == first.generation + 1
        extractor.release.set()
        status = service.wait("twice", timeout=30)
    finally:
        extractor.release.set()
        service.shutdown()

    assert status.status == "completed"
    assert status.generation == second.generation
    assert status.processed_pages == 3
    # Once the newer run started, every persisted write belongs to it.
    first_newer = next(i for i, w in enumerate(status_store.writes) if w.generation == second.generation)
    assert all(w.generation == second.generation for w in status_store.writes[first_newer:])
    assert document_store.list_artifact_pages("twice") == [1, 2, 3]


def test_cancel_stops_between_pages(document_store, store_pdf) -> None:  # noqa: ANN001
    url = store_pdf("cancel.pdf", page_count=3)
    extractor = GatedExtractor()
    service, _ = _service(document_store, extractor)
    try:
        service.start(url)
        assert extractor.started.wait(timeout=10)
        service.cancel("cancel")
        extractor.release.set()
        status = service.wait("cancel", timeout=30)
    finally:
        extractor.release.set()
        service.shutdown()

    assert status.status == "cancelled"
    assert status.processed_pages == 0
    assert document_store.list_artifact_pages("cancel") == []


def test_cancel_without_running_job_raises(document_store) -> None:  # noqa: ANN001
    service, _ = _service(document_store)
    try:
        with pytest.raises(JobNotFoundError):
            service.cancel("idle")
    finally:
        service.shutdown()


def test_start_validates_input(document_store) -> None:  # noqa: ANN001
    service, _ = _service(document_store)
    try:
        with pytest.raises(ValueError):
            service.start("")
        with pytest.raises(DocumentNotFoundError):
            service.start("/pdf/missing.pdf")
        with pytest.raises(DocumentNotFoundError):
            service.start("https://example.org/remote.pdf")
    finally:
        service.shutdown()
    assert service.status("missing").status == "not_found"


def test_start_after_shutdown_is_rejected(document_store, store_pdf) -> None:  # noqa: ANN001
    url = store_pdf("late.pdf", page_count=1)
    service, _ = _service(document_store)
    service.shutdown()
    with pytest.raises(RuntimeError):
        service.start(url)


def test_status_survives_a_new_service_instance(document_store: DocumentStore, store_pdf, paths) -> None:  # noqa: ANN001
    url = store_pdf("durable.pdf", page_count=2)
    service, _ = _service(document_store)
    try:
        service.start(url)
        service.wait("durable", timeout=30)
    finally:
        service.shutdown()

    restarted = JobStatusStore(DocumentStore(paths).status_path)
    status = restarted.read("durable")
    assert status.status == "completed"
    assert status.total_pages == 2
    assert Path(document_store.status_path("durable")).is_file()


def test_concurrent_starts_leave_newest_run_in_charge(document_store, store_pdf) -> None:  # noqa: ANN001
    url = store_pdf("race.pdf", page_count=3)
    registry = SlowFirstRegistry()
    service, _ = _service(document_store, registry=registry)
    results: dict[str, int] = {}

    def first() -> None:
        results["first"] = service.start(url).generation

    def second() -> None:
        results["second"] = service.start(url).generation
        registry.other_start_done.set()

    try:
        first_thread = threading.Thread(target=first)
        first_thread.start()
        assert registry.entered.wait(timeout=10)
        second_thread = threading.Thread(target=second)
        second_thread.start()
        first_thread.join(timeout=10)
        second_thread.join(timeout=10)
        assert results == {"first": 1, "second": 2}
        assert registry.get("race").generation == 2
        service.wait("race", timeout=30)
    finally:
        registry.other_start_done.set()
        service.shutdown(wait=True)

    status = service.status("race")
    assert status.status == "completed"
    assert status.generation == 2
    assert status.processed_pages == 3
    assert document_store.list_artifact_pages("race") == [1, 2, 3]


def test_status_write_failure_does_not_stop_the_job(document_store, store_pdf) -> None:  # noqa: ANN001
    url = store_pdf("flaky.pdf", page_count=3)
    status_store = FlakyStatusStore(document_store.status_path)
    service, _ = _service(document_store, status_store=status_store)
    try:
        service.start(url)
        status = service.wait("flaky", timeout=30)
    finally:
        service.shutdown()

    assert status_store.failures == 1
    assert status.status == "completed"
    assert status.processed_pages == 3
    assert document_store.list_artifact_pages("flaky") == [1, 2, 3]


def test_shutdown_cancels_jobs_that_never_started(document_store, store_pdf) -> None:  # noqa: ANN001
    running_url = store_pdf("busy.pdf", page_count=2)
    queued_url = store_pdf("queued.pdf", page_count=2)
    extractor = GatedExtractor()
    service, _ = _service(document_store, extractor, max_workers=1)
    try:
        service.start(running_url)
        assert extractor.started.wait(timeout=10)
        service.start(queued_url)
        assert service.status("queued").status == "processing"

        service.shutdown(cancel=True, wait=False)

        assert service.status("queued").status == "cancelled"
        assert service.registry.get("queued") is None
        extractor.release.set()
        busy = service.wait("busy", timeout=30)
    finally:
        extractor.release.set()
        service.shutdown(cancel=True, wait=True)

    assert busy.status == "cancelled"
    assert document_store.list_artifact_pages("queued") == []
