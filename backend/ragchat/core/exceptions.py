"""
Domain exceptions for the retrieval and ingestion pipeline.

Every error carries a human-readable message, an optional detail string,
an HTTP status code and a stable error_code. The API layer converts them
into a structured ErrorResponse (see ragchat.main); background jobs log
them and record the failure on the Document.
"""

from __future__ import annotations


class RagChatError(Exception):
    """Base exception for all application errors."""

    status_code: int = 500
    error_code:  str = "INTERNAL_ERROR"

    def __init__(self, message: str, detail: str | None = None) -> None:
        self.message = message
        self.detail  = detail
        super().__init__(message)


# ---------------------------------------------------------------------------
# Upstream providers
# ---------------------------------------------------------------------------

class EmbeddingUnavailable(RagChatError):
    """The embedding provider failed or returned an unusable vector."""
    status_code = 502
    error_code  = "EMBEDDING_UNAVAILABLE"

    def __init__(self, upstream_message: str) -> None:
        super().__init__(
            message=f"Embedding request failed: {upstream_message}",
            detail=upstream_message,
        )


class VectorStoreUnavailable(RagChatError):
    """The vector store rejected or could not complete an operation."""
    status_code = 502
    error_code  = "VECTOR_STORE_UNAVAILABLE"

    def __init__(self, upstream_message: str) -> None:
        super().__init__(
            message=f"Vector store request failed: {upstream_message}",
            detail=upstream_message,
        )


class BlobStoreUnavailable(RagChatError):
    """S3 put/get/delete failed."""
    status_code = 502
    error_code  = "BLOB_STORE_UNAVAILABLE"

    def __init__(self, upstream_message: str) -> None:
        super().__init__(
            message=f"Blob store request failed: {upstream_message}",
            detail=upstream_message,
        )


class GenerationFailed(RagChatError):
    """The generative model returned an error."""
    status_code = 502
    error_code  = "GENERATION_FAILED"
    retryable   = False

    def __init__(self, upstream_message: str) -> None:
        super().__init__(
            message=f"Failed to generate response: {upstream_message}",
            detail=upstream_message,
        )


class GenerationOverloaded(GenerationFailed):
    """Transient overload reported by the provider. Callers may retry later."""
    status_code = 503
    error_code  = "GENERATION_OVERLOADED"
    retryable   = True


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

class NoExtractableText(RagChatError):
    status_code = 422
    error_code  = "NO_EXTRACTABLE_TEXT"

    def __init__(self) -> None:
        super().__init__(message="No text could be extracted from the PDF")


class NoChunksProduced(RagChatError):
    status_code = 422
    error_code  = "NO_CHUNKS_PRODUCED"

    def __init__(self) -> None:
        super().__init__(message="No chunks could be created from the extracted text")


class EmptyDocumentText(RagChatError):
    status_code = 400
    error_code  = "TEXT_REQUIRED"

    def __init__(self) -> None:
        super().__init__(message="Text is required")


class InvalidUpload(RagChatError):
    """Rejected file upload (wrong type, empty, too large)."""
    status_code = 400
    error_code  = "INVALID_UPLOAD"

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message=message)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Lookups / concurrency
# ---------------------------------------------------------------------------

class DocumentNotFound(RagChatError):
    status_code = 404
    error_code  = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: object) -> None:
        super().__init__(
            message="Document not found or access denied",
            detail=str(document_id),
        )


class ConversationNotFound(RagChatError):
    status_code = 404
    error_code  = "CONVERSATION_NOT_FOUND"

    def __init__(self, conversation_id: object) -> None:
        super().__init__(
            message="Chat not found or access denied",
            detail=str(conversation_id),
        )


class ConversationConflict(RagChatError):
    """Another request updated the conversation first (optimistic lock lost)."""
    status_code = 409
    error_code  = "CONVERSATION_CONFLICT"

    def __init__(self, conversation_id: object) -> None:
        super().__init__(
            message="Conversation was modified by another request; retry the message",
            detail=str(conversation_id),
        )


# ---------------------------------------------------------------------------
# Event extraction: never surfaced to callers
# ---------------------------------------------------------------------------

class ParseFailure(RagChatError):
    """Model output for event extraction could not be parsed as a JSON array."""
    status_code = 422
    error_code  = "PARSE_FAILURE"
