from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Callable

from pdfpages.core.errors import JobNotFoundError
from pdfpages.domain.models.job import JobStatus

logger = logging.getLogger(__name__)

StatusListener = Callable[[JobStatus], None]


@dataclass(slots=True)
class JobHandle:
    document_id: str
    generation: int
    cancel_event: threading.Event = field(default_factory=threading.Event)
    future: Future[None] | None = None
    listeners: list[StatusListener] = field(default_factory=list)

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()


class JobRegistry:
    """In-flight decomposition jobs for this process, keyed by document identifier.

    A handle is inserted when a job starts and removed when it reaches a
    terminal state. Starting a newer generation for the same document replaces
    the older handle and signals it to stop.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, JobHandle] = {}
        self._lock = threading.Lock()

    def register(self, handle: JobHandle) -> JobHandle | None:
        with self._lock:
            previous = self._jobs.get(handle.document_id)
            stale = previous is not None and previous.generation > handle.generation
            if not stale:
                self._jobs[handle.document_id] = handle
                if previous is not None:
                    # Listeners follow the document, not a particular run.
                    handle.listeners.extend(previous.listeners)
                    previous.listeners.clear()
        if stale:
            # An older run never displaces a newer one.
            handle.cancel_event.set()
        elif previous is not None:
            previous.cancel_event.set()
        return previous

    def get(self, document_id: str) -> JobHandle | None:
        with self._lock:
            return self._jobs.get(document_id)

    def active(self) -> list[JobHandle]:
        with self._lock:
            return list(self._jobs.values())

    def remove(self, document_id: str, generation: int) -> bool:
        with self._lock:
            current = self._jobs.get(document_id)
            if current is None or current.generation != generation:
                return False
            del self._jobs[document_id]
            current.listeners.clear()
        return True

    def add_listener(self, document_id: str, listener: StatusListener) -> Callable[[], None]:
        with self._lock:
            handle = self._jobs.get(document_id)
            if handle is None:
                raise JobNotFoundError(f"No job in progress for {document_id}")
            handle.listeners.append(listener)

        def detach() -> None:
            with self._lock:
                current = self._jobs.get(document_id)
                if current is not None and listener in current.listeners:
                    current.listeners.remove(listener)

        return detach

    def notify(self, document_id: str, generation: int, status: JobStatus) -> None:
        with self._lock:
            handle = self._jobs.get(document_id)
            if handle is None or handle.generation != generation:
                return
            listeners = list(handle.listeners)
        for listener in listeners:
            try:
                listener(status)
            except Exception:
                logger.exception("Status listener failed for %s", document_id)
