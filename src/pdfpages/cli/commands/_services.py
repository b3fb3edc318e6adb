from __future__ import annotations

from pdfpages.application.services.decomposition_service import DecompositionService
from pdfpages.application.services.page_resolver_service import PageResolverService
from pdfpages.cli.context import CLIContext
from pdfpages.infrastructure.status.status_store import JobStatusStore
from pdfpages.infrastructure.storage.document_store import DocumentStore


def document_store(ctx: CLIContext) -> DocumentStore:
    return DocumentStore(ctx.paths)


def decomposition_service(ctx: CLIContext) -> DecompositionService:
    store = document_store(ctx)
    return DecompositionService(
        document_store=store,
        status_store=JobStatusStore(store.status_path),
        max_workers=ctx.settings.max_job_workers,
    )


def resolver_service(ctx: CLIContext) -> PageResolverService:
    return PageResolverService(document_store=document_store(ctx))


def as_document_url(value: str) -> str:
    """Accept ``/pdf/x.pdf``, ``pdf/x.pdf`` or a bare ``x.pdf`` name."""
    raw = value.strip()
    if raw.startswith(("http://", "https://")) or raw.startswith("/pdf/"):
        return raw
    if raw.startswith("pdf/"):
        return f"/{raw}"
    return f"/pdf/{raw}"
