from pydantic import BaseModel


class Session(BaseModel):
    """Session-mode isolation record.

    Attributes:
        id:               The isolation key (32 lowercase hex characters).
        created_at:       Epoch seconds of the first request with this key.
        last_accessed_at: Epoch seconds of the most recent request with this key.
    """

    id: str
    created_at: float
    last_accessed_at: float
