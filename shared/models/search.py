"""Pydantic models for similarity search results."""

from pydantic import BaseModel

from shared.models.document import DocumentChunk


class SearchHit(BaseModel):
    """A chunk returned by a vector store search.

    Score convention: cosine similarity, higher means more similar.
    """

    chunk: DocumentChunk
    score: float
