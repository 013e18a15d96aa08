"""Pydantic models for uploaded documents and their chunks.

Hierarchy:
  ChunkMetadata      : per-chunk provenance stored alongside every vector.
  DocumentChunk      : one embeddable unit; id is "{documentId}-chunk-{index}".
  DocumentSummary    : one logical document, re-assembled from its chunks.
  ProcessedDocument  : raw text handed over by the text extractor.
"""

from pydantic import BaseModel, ConfigDict, Field

CHUNK_ID_SEPARATOR = "-chunk-"


def make_chunk_id(document_id: str, chunk_index: int) -> str:
    """Build the chunk id for a chunk of a document.

    Args:
        document_id (str): The document's id.
        chunk_index (int): Zero-based position of the chunk.

    Returns:
        str: "{document_id}-chunk-{chunk_index}"
    """
    return f"{document_id}{CHUNK_ID_SEPARATOR}{chunk_index}"


def get_document_id(chunk_id: str) -> str:
    """Return the document id a chunk id belongs to."""
    return chunk_id.split(CHUNK_ID_SEPARATOR)[0]


class ChunkMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source: str
    created_at: str = Field(alias="createdAt")
    file_type: str = Field(alias="fileType")
    chunk_index: int = Field(alias="chunkIndex")
    total_chunks: int = Field(alias="totalChunks")


class DocumentChunk(BaseModel):
    """A single chunk of an uploaded document.

    The vector is only populated on the way into a store; chunks read back
    from a store carry None.
    """

    id: str
    title: str
    content: str
    metadata: ChunkMetadata
    vector: list[float] | None = None

    def get_document_id(self) -> str:
        return get_document_id(self.id)


class DocumentSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    source: str
    created_at: str = Field(alias="createdAt")
    file_type: str = Field(alias="fileType")
    chunks: int


class ProcessedDocument(BaseModel):
    title: str
    content: str
    file_type: str
