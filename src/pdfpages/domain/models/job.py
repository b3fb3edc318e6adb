from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"
STATUS_NOT_FOUND = "not_found"

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_FAILED, STATUS_CANCELLED})


@dataclass(slots=True)
class JobStatus:
    """Durable record of one decomposition job, keyed by document identifier."""

    document_id: str
    status: str
    total_pages: int = 0
    processed_pages: int = 0
    started_at: str | None = None
    updated_at: str | None = None
    completed_at: str | None = None
    error: str | None = None
    generation: int = 0
    failed_page_numbers: list[int] = field(default_factory=list)

    @property
    def failed_pages(self) -> int:
        return len(self.failed_page_numbers)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def exists(self) -> bool:
        return self.status != STATUS_NOT_FOUND

    @classmethod
    def not_found(cls, document_id: str) -> JobStatus:
        return cls(document_id=document_id, status=STATUS_NOT_FOUND)

    def to_record(self) -> dict[str, Any]:
        """Serialize to the persisted camelCase record shape."""
        record: dict[str, Any] = {
            "status": self.status,
            "totalPages": self.total_pages,
            "processedPages": self.processed_pages,
            "startedAt": self.started_at,
            "updatedAt": self.updated_at,
            "generation": self.generation,
            "failedPages": self.failed_pages,
            "failedPageNumbers": list(self.failed_page_numbers),
        }
        if self.completed_at is not None:
            record["completedAt"] = self.completed_at
        if self.error is not None:
            record["error"] = self.error
        return record

    @classmethod
    def from_record(cls, document_id: str, record: dict[str, Any]) -> JobStatus:
        failed = record.get("failedPageNumbers") or []
        return cls(
            document_id=document_id,
            status=str(record.get("status") or STATUS_NOT_FOUND),
            total_pages=_safe_int(record.get("totalPages")),
            processed_pages=_safe_int(record.get("processedPages")),
            started_at=record.get("startedAt"),
            updated_at=record.get("updatedAt"),
            completed_at=record.get("completedAt"),
            error=record.get("error"),
            generation=_safe_int(record.get("generation")),
            failed_page_numbers=[_safe_int(n) for n in failed if _safe_int(n) > 0],
        )


def _safe_int(value: object) -> int:
    try:
        return max(0, int(value))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
