from __future__ import annotations

import re
from pathlib import Path, PurePosixPath

from pdfpages.core.config import LOCAL_DOCUMENT_PREFIX, PAGES_DIRNAME, AppPaths
from pdfpages.core.errors import DocumentNotFoundError, InvalidPageNumberError
from pdfpages.core.files import ensure_directory, write_bytes_atomic
from pdfpages.domain.models.page import DocumentHandle

STATUS_FILENAME = "status.json"
_PAGE_NAME_RE = re.compile(r"^page-([1-9][0-9]*)\.pdf$")
_DOCUMENT_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class DocumentStore:
    """Filesystem layout for source documents and their pre-split pages.

    Sources live at ``<public>/pdf/<name>.pdf`` and are addressed by URL
    (``/pdf/<name>.pdf``). Pages for document ``<id>`` live at
    ``<public>/pdf-pages/<id>/page-<n>.pdf`` next to ``status.json``.
    """

    def __init__(self, paths: AppPaths) -> None:
        self.paths = paths

    @staticmethod
    def is_local(document_url: str | None) -> bool:
        return bool(document_url) and str(document_url).startswith(LOCAL_DOCUMENT_PREFIX)

    @staticmethod
    def document_id_for_url(document_url: str) -> str:
        name = PurePosixPath(str(document_url)).name
        if name.lower().endswith(".pdf"):
            name = name[: -len(".pdf")]
        return name

    def ensure_layout(self) -> None:
        ensure_directory(self.paths.documents_dir)
        ensure_directory(self.paths.pages_dir)

    def document_path(self, document_url: str) -> Path:
        relative = str(document_url).lstrip("/")
        public_root = self.paths.public_dir.resolve()
        resolved = (public_root / relative).resolve()
        documents_root = self.paths.documents_dir.resolve()
        if documents_root not in resolved.parents:
            raise DocumentNotFoundError(f"Document is outside the local store: {document_url}")
        return resolved

    def open_document(self, document_url: str) -> DocumentHandle:
        if not self.is_local(document_url):
            raise DocumentNotFoundError(f"Not a local document: {document_url}")
        path = self.document_path(document_url)
        if not path.is_file():
            raise DocumentNotFoundError(f"PDF file not found: {document_url}")
        document_id = self.document_id_for_url(document_url)
        self.validate_document_id(document_id)
        return DocumentHandle(document_id=document_id, document_url=str(document_url), path=path)

    def read_bytes(self, handle: DocumentHandle) -> bytes:
        try:
            return handle.path.read_bytes()
        except FileNotFoundError as exc:
            raise DocumentNotFoundError(f"PDF file not found: {handle.document_url}") from exc

    @staticmethod
    def validate_document_id(document_id: str) -> str:
        if not document_id or not _DOCUMENT_ID_RE.match(document_id):
            raise DocumentNotFoundError(f"Invalid document identifier: {document_id!r}")
        return document_id

    def pages_dir_for(self, document_id: str) -> Path:
        return self.paths.pages_dir / self.validate_document_id(document_id)

    def ensure_pages_dir(self, document_id: str) -> Path:
        target = self.pages_dir_for(document_id)
        ensure_directory(target)
        return target

    def status_path(self, document_id: str) -> Path:
        return self.pages_dir_for(document_id) / STATUS_FILENAME

    @staticmethod
    def artifact_name(page_number: int) -> str:
        if page_number < 1:
            raise InvalidPageNumberError(f"Invalid page number: {page_number}")
        return f"page-{page_number}.pdf"

    def artifact_path(self, document_id: str, page_number: int) -> Path:
        return self.pages_dir_for(document_id) / self.artifact_name(page_number)

    def artifact_url(self, document_id: str, page_number: int) -> str:
        return f"/{PAGES_DIRNAME}/{self.validate_document_id(document_id)}/{self.artifact_name(page_number)}"

    def has_artifact(self, document_id: str, page_number: int) -> bool:
        return self.artifact_path(document_id, page_number).is_file()

    def write_artifact(self, document_id: str, page_number: int, data: bytes) -> Path:
        dst = self.artifact_path(document_id, page_number)
        write_bytes_atomic(dst, data)
        return dst

    def list_artifact_pages(self, document_id: str) -> list[int]:
        target = self.pages_dir_for(document_id)
        if not target.is_dir():
            return []
        pages: list[int] = []
        for entry in target.iterdir():
            match = _PAGE_NAME_RE.match(entry.name)
            if match and entry.is_file():
                pages.append(int(match.group(1)))
        return sorted(pages)

    def artifact_abspath(self, document_id: str, name: str) -> Path:
        """Resolve a served artifact name, rejecting anything but ``page-<n>.pdf``."""
        match = _PAGE_NAME_RE.match(name or "")
        if not match:
            raise DocumentNotFoundError(f"Page artifact not found: {document_id}/{name}")
        path = self.artifact_path(document_id, int(match.group(1)))
        if not path.is_file():
            raise DocumentNotFoundError(f"Page artifact not found: {document_id}/{name}")
        return path
