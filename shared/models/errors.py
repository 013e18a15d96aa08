"""Error taxonomy shared by the isolation, storage and document layers.

Every error a component raises towards the HTTP layer is one of these; the
API server maps each class to a status code and an ``{"error": ...}`` body.
"""


class BridgeError(Exception):
    """Base class for all errors raised by the bridge."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequestError(BridgeError):
    """The caller sent something unusable.

    Raised when:
    - No file was uploaded, or the file type is not allowed
    - The upload exceeds the configured size limit
    - The document contains no extractable text
    """

    status_code = 400


class NotFoundError(BridgeError):
    """The addressed document does not exist in the caller's store."""

    status_code = 404


class CollaboratorError(BridgeError):
    """An external backend (embedding, chat, vector index, text extraction) failed.

    Attributes:
        backend (str | None): Name of the failing backend, e.g. "qdrant".
        backend_status (int | None): HTTP status the backend answered with, if any.
    """

    def __init__(self, message: str, backend: str | None = None, backend_status: int | None = None) -> None:
        super().__init__(message)
        self.backend = backend
        self.backend_status = backend_status


class StoreInitializationError(BridgeError):
    """A per-tenant vector store could not be created or opened."""

    def __init__(self, message: str, store_key: str) -> None:
        super().__init__(message)
        self.store_key = store_key
