from __future__ import annotations

import json
import logging
import queue
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterator

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import FileResponse, JSONResponse, Response, StreamingResponse
from pydantic import BaseModel

from pdfpages import __version__
from pdfpages.application.services.decomposition_service import DecompositionService
from pdfpages.application.services.page_resolver_service import PageResolverService
from pdfpages.core.config import AppPaths, RuntimeSettings, load_runtime_settings
from pdfpages.core.errors import (
    DocumentNotFoundError,
    ExtractionError,
    InvalidPageNumberError,
    InvalidRangeError,
    JobNotFoundError,
    PdfPagesError,
)
from pdfpages.core.time import now_utc_iso
from pdfpages.domain.models.job import JobStatus
from pdfpages.domain.models.page import PDF_MEDIA_TYPE, ExternalReference
from pdfpages.infrastructure.pdf.page_extractor import PageExtractor
from pdfpages.infrastructure.status.status_store import JobStatusStore
from pdfpages.infrastructure.storage.document_store import DocumentStore

logger = logging.getLogger(__name__)

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"
_STREAM_POLL_SECONDS = 15.0


class ProcessPdfRequest(BaseModel):
    pdfPath: str | None = None


class CancelJobRequest(BaseModel):
    fileId: str | None = None


class PdfPageRequest(BaseModel):
    pdfUrl: str | None = None
    pageNumber: int | None = None
    fromPage: int | None = None
    toPage: int | None = None


def _status_payload(status: JobStatus) -> dict[str, Any]:
    if not status.exists:
        return {"status": "not_found", "message": "Processing not started or file not found"}
    return status.to_record()


def _sse_event(event: str, payload: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(payload, ensure_ascii=True)}\n\n"


def _to_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (DocumentNotFoundError, JobNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidRangeError):
        return HTTPException(status_code=400, detail="Invalid page range")
    if isinstance(exc, InvalidPageNumberError):
        return HTTPException(status_code=400, detail="Invalid page number")
    if isinstance(exc, ValueError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, ExtractionError):
        return HTTPException(status_code=500, detail="Failed to extract page")
    return HTTPException(status_code=500, detail="Internal error")


def create_app(paths: AppPaths, settings: RuntimeSettings | None = None) -> FastAPI:
    runtime = settings or load_runtime_settings()

    document_store = DocumentStore(paths)
    document_store.ensure_layout()
    status_store = JobStatusStore(document_store.status_path)
    extractor = PageExtractor()
    decomposition_service = DecompositionService(
        document_store=document_store,
        status_store=status_store,
        extractor=extractor,
        max_workers=runtime.max_job_workers,
    )
    resolver_service = PageResolverService(document_store=document_store, extractor=extractor)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        decomposition_service.shutdown(cancel=True, wait=True)

    app = FastAPI(title="pdfpages", version=__version__, lifespan=lifespan)
    app.state.decomposition_service = decomposition_service
    app.state.resolver_service = resolver_service

    @app.post("/api/process-pdf")
    def api_process_pdf(req: ProcessPdfRequest) -> dict[str, Any]:
        if not req.pdfPath:
            raise HTTPException(status_code=400, detail="Missing pdfPath")
        try:
            result = decomposition_service.start(req.pdfPath)
        except (PdfPagesError, ValueError) as exc:
            raise _to_http_error(exc) from exc
        except Exception as exc:
            logger.exception("Error starting PDF processing: %s", req.pdfPath)
            raise HTTPException(status_code=500, detail="Failed to start PDF processing") from exc
        return result.to_payload()

    @app.get("/api/process-pdf")
    def api_process_pdf_status(fileId: str | None = Query(default=None)) -> dict[str, Any]:
        if not fileId:
            raise HTTPException(status_code=400, detail="Missing fileId parameter")
        try:
            document_store.validate_document_id(fileId)
        except DocumentNotFoundError:
            return _status_payload(JobStatus.not_found(fileId))
        return _status_payload(decomposition_service.status(fileId))

    @app.post("/api/process-pdf/cancel")
    def api_process_pdf_cancel(req: CancelJobRequest) -> dict[str, Any]:
        if not req.fileId:
            raise HTTPException(status_code=400, detail="Missing fileId")
        try:
            status = decomposition_service.cancel(req.fileId)
        except PdfPagesError as exc:
            raise _to_http_error(exc) from exc
        return {"ok": True, "cancelRequested": True, "status": _status_payload(status)}

    @app.get("/api/process-pdf/stream")
    def api_process_pdf_stream(fileId: str | None = Query(default=None)) -> StreamingResponse:
        if not fileId:
            raise HTTPException(status_code=400, detail="Missing fileId parameter")
        try:
            document_store.validate_document_id(fileId)
        except DocumentNotFoundError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        updates: queue.Queue[JobStatus] = queue.Queue()
        try:
            detach = decomposition_service.registry.add_listener(fileId, updates.put)
        except JobNotFoundError:
            detach = None

        def iterator() -> Iterator[str]:
            seq = 0

            def event(name: str, payload: dict[str, Any]) -> str:
                nonlocal seq
                seq += 1
                return _sse_event(name, {**payload, "emitted_at": now_utc_iso(), "event_seq": seq})

            try:
                current = decomposition_service.status(fileId)
                yield event("status", _status_payload(current))
                while detach is not None and not current.is_terminal:
                    try:
                        current = updates.get(timeout=_STREAM_POLL_SECONDS)
                    except queue.Empty:
                        current = decomposition_service.status(fileId)
                        if decomposition_service.registry.get(fileId) is None:
                            yield event("status", _status_payload(current))
                            break
                    yield event("status", _status_payload(current))
                yield event("done", {"ok": True})
            finally:
                if detach is not None:
                    detach()

        return StreamingResponse(
            iterator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    @app.post("/api/pdf-page")
    def api_pdf_page(req: PdfPageRequest) -> Response:
        if not req.pdfUrl:
            raise HTTPException(status_code=400, detail="Missing pdfUrl")
        if (req.fromPage is None) != (req.toPage is None):
            raise HTTPException(status_code=400, detail="Page range needs both fromPage and toPage")
        try:
            if req.fromPage is not None and req.toPage is not None:
                resolved_range = resolver_service.resolve_range(req.pdfUrl, req.fromPage, req.toPage)
                return JSONResponse(resolved_range.to_payload())

            if req.pageNumber is None:
                if not document_store.is_local(req.pdfUrl):
                    return JSONResponse(ExternalReference(url=req.pdfUrl).to_payload())
                raise HTTPException(status_code=400, detail="Missing pageNumber or page range")

            resolved = resolver_service.resolve_page(req.pdfUrl, req.pageNumber)
        except HTTPException:
            raise
        except (PdfPagesError, ValueError) as exc:
            if isinstance(exc, ExtractionError):
                logger.exception("Error extracting PDF page from %s", req.pdfUrl)
            raise _to_http_error(exc) from exc

        if isinstance(resolved, ExternalReference):
            return JSONResponse(resolved.to_payload())
        if resolved.is_pre_processed:
            return JSONResponse(
                {"url": resolved.url, "isPreProcessed": True, "pageNumber": resolved.page_number},
                headers={"Cache-Control": IMMUTABLE_CACHE_CONTROL},
            )
        return Response(
            content=resolved.data or b"",
            media_type=PDF_MEDIA_TYPE,
            headers={"Cache-Control": IMMUTABLE_CACHE_CONTROL},
        )

    @app.get("/api/pdf-page")
    def api_pdf_info(pdfUrl: str | None = Query(default=None)) -> dict[str, Any]:
        if not pdfUrl:
            raise HTTPException(status_code=400, detail="Missing pdfUrl parameter")
        try:
            return resolver_service.document_info(pdfUrl)
        except PdfPagesError as exc:
            if isinstance(exc, ExtractionError):
                logger.exception("Error getting PDF info for %s", pdfUrl)
                raise HTTPException(status_code=500, detail="Failed to get PDF info") from exc
            raise _to_http_error(exc) from exc

    @app.get("/pdf-pages/{document_id}/{name}")
    def pdf_page_artifact(document_id: str, name: str) -> FileResponse:
        try:
            path = resolver_service.artifact_path(document_id, name)
        except DocumentNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        response = FileResponse(path=str(path), media_type=PDF_MEDIA_TYPE)
        response.headers["Cache-Control"] = IMMUTABLE_CACHE_CONTROL
        return response

    return app
