"""Exception types for the document verification engine."""

from typing import Optional


class DocverifyError(Exception):
    """Base exception for engine errors."""


class CompletionError(DocverifyError):
    """Raised when a text-completion call fails after retries or times out."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UnsupportedDocumentTypeError(DocverifyError):
    """Raised when no template or schema is registered for a document type."""

    def __init__(self, doc_type: str):
        super().__init__(f"No extraction prompt configured for document type: {doc_type}")
        self.doc_type = doc_type


class StageTransitionError(DocverifyError):
    """Raised on an illegal processing-stage transition."""


class NoUsableExtractionError(DocverifyError):
    """Raised when not a single document of a deal produced usable structured data."""

    def __init__(self, deal_id: str):
        super().__init__(f"No document in deal {deal_id} has a usable extraction")
        self.deal_id = deal_id
