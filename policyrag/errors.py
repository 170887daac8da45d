"""Pipeline error taxonomy.

Every error raised by the coordinators derives from PipelineError and carries
the HTTP status and stable code used in the JSON error envelope.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""

    status_code: int = 500
    code: str = "Server"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class BadRequest(PipelineError):
    """Missing or malformed required field."""

    status_code = 400
    code = "BadRequest"


class Unauthorized(PipelineError):
    """No resolvable caller identity."""

    status_code = 401
    code = "Unauthorized"


class Forbidden(PipelineError):
    """Caller does not own the target document."""

    status_code = 403
    code = "Forbidden"


class NotFound(PipelineError):
    """Document (or its stored file) does not exist."""

    status_code = 404
    code = "NotFound"


class DocumentBusy(PipelineError):
    """Another operation holds the document lease."""

    status_code = 409
    code = "DocumentBusy"


class MissingSource(PipelineError):
    """Document has no stored source file to reindex from."""

    status_code = 400
    code = "MissingSource"


class EmptyDocumentText(PipelineError):
    """Nothing extractable to index."""

    status_code = 400
    code = "EmptyDocumentText"


class UnextractableText(EmptyDocumentText):
    """Uploaded file decoded to empty text."""

    code = "UnextractableText"


class UpstreamUnavailable(PipelineError):
    """Embedding, synthesis, storage or vector service failed."""

    status_code = 502
    code = "UpstreamUnavailable"


class EmbeddingUnavailable(UpstreamUnavailable):
    """Embedding endpoint unreachable or returned no vector for an input."""

    code = "EmbeddingUnavailable"


class IndexNotFound(UpstreamUnavailable):
    """Vector index has not been created yet."""

    code = "IndexNotFound"


class IndexProvisioningTimeout(UpstreamUnavailable):
    """Vector index did not become ready within the polling budget."""

    code = "IndexProvisioningTimeout"


class VectorDeleteFailed(PipelineError):
    """Vectors could not be removed; metadata left untouched."""

    status_code = 502
    code = "VectorDeleteFailed"


class DimensionMismatch(PipelineError):
    """Vector length differs from the index's configured dimension."""

    status_code = 500
    code = "DimensionMismatch"


class ServerError(PipelineError):
    """Unclassified failure."""

    status_code = 500
    code = "Server"
