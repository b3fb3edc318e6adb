from __future__ import annotations

import base64
from dataclasses import dataclass
from pathlib import Path

PDF_MEDIA_TYPE = "application/pdf"


@dataclass(frozen=True, slots=True)
class DocumentHandle:
    document_id: str
    document_url: str
    path: Path

    @property
    def size_bytes(self) -> int:
        return self.path.stat().st_size


@dataclass(frozen=True, slots=True)
class PageArtifact:
    document_id: str
    page_number: int
    data: bytes
    location: Path | None = None


@dataclass(frozen=True, slots=True)
class ResolvedPage:
    page_number: int
    url: str
    is_pre_processed: bool
    data: bytes | None = None
    path: Path | None = None

    @classmethod
    def from_cache(cls, page_number: int, url: str, path: Path) -> ResolvedPage:
        return cls(page_number=page_number, url=url, is_pre_processed=True, path=path)

    @classmethod
    def from_extraction(cls, page_number: int, data: bytes) -> ResolvedPage:
        encoded = base64.b64encode(data).decode("ascii")
        return cls(
            page_number=page_number,
            url=f"data:{PDF_MEDIA_TYPE};base64,{encoded}",
            is_pre_processed=False,
            data=data,
        )

    def to_payload(self) -> dict[str, object]:
        return {
            "pageNumber": self.page_number,
            "url": self.url,
            "isPreProcessed": self.is_pre_processed,
        }


@dataclass(frozen=True, slots=True)
class ExternalReference:
    """A document reference outside the local store, returned unresolved."""

    url: str

    def to_payload(self) -> dict[str, object]:
        return {"url": self.url, "isExternal": True}


@dataclass(frozen=True, slots=True)
class ResolvedRange:
    pages: list[ResolvedPage]
    total_pages: int
    from_page: int
    to_page: int

    def to_payload(self) -> dict[str, object]:
        return {
            "pages": [page.to_payload() for page in self.pages],
            "totalPages": self.total_pages,
            "fromPage": self.from_page,
            "toPage": self.to_page,
        }
