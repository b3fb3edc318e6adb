class PdfPagesError(Exception):
    """Base error for all user-facing pdfpages exceptions."""


class ConfigurationError(PdfPagesError):
    """Raised when configuration is invalid or incomplete."""


class DocumentNotFoundError(PdfPagesError):
    """Raised when a source document is absent from the document store."""


class InvalidPageNumberError(PdfPagesError):
    """Raised when a requested page number is outside the document."""


class InvalidRangeError(InvalidPageNumberError):
    """Raised when a requested page range is empty or outside the document."""


class ExtractionError(PdfPagesError):
    """Raised when a document cannot be parsed or a page cannot be copied."""


class JobLoadError(PdfPagesError):
    """Raised when a decomposition job cannot load its source document."""


class StatusWriteError(PdfPagesError):
    """Raised when a job status record cannot be persisted."""


class JobNotFoundError(PdfPagesError):
    """Raised when no decomposition job is in flight for a document."""
