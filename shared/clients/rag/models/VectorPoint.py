"""VectorPoint model: metadata stored alongside each chunk vector in a RAG backend."""

import uuid

from pydantic import BaseModel

from shared.models.document import ChunkMetadata, DocumentChunk


def make_point_id(chunk_id: str) -> str:
    """Build a deterministic UUID5 point id for a chunk.

    Backends like Qdrant only accept UUIDs or integers as point ids, so the
    readable chunk id travels in the payload and the point id is derived from it.
    Re-inserting a chunk with the same id overwrites instead of duplicating.

    Args:
        chunk_id (str): The chunk id ("{documentId}-chunk-{index}").

    Returns:
        str: UUID string usable as a point id.
    """
    return str(uuid.uuid5(uuid.NAMESPACE_OID, chunk_id))


class VectorPoint(BaseModel):
    """Payload stored alongside each chunk vector.

    Attributes:
        chunk_id:      "{document_id}-chunk-{chunk_index}".
        document_id:   Id of the uploaded document the chunk belongs to.
        title:         Human-readable document title (the uploaded file name).
        content:       Raw text of this chunk.
        source:        Original file name of the upload.
        created_at:    ISO-8601 upload timestamp.
        file_type:     "pdf", "docx" or "txt".
        chunk_index:   Zero-based position of this chunk within the document.
        total_chunks:  Number of chunks the document was split into.
    """

    chunk_id: str
    document_id: str
    title: str
    content: str
    source: str
    created_at: str
    file_type: str
    chunk_index: int
    total_chunks: int

    @classmethod
    def from_chunk(cls, chunk: DocumentChunk) -> "VectorPoint":
        return cls(
            chunk_id=chunk.id,
            document_id=chunk.get_document_id(),
            title=chunk.title,
            content=chunk.content,
            source=chunk.metadata.source,
            created_at=chunk.metadata.created_at,
            file_type=chunk.metadata.file_type,
            chunk_index=chunk.metadata.chunk_index,
            total_chunks=chunk.metadata.total_chunks,
        )

    def to_chunk(self) -> DocumentChunk:
        return DocumentChunk(
            id=self.chunk_id,
            title=self.title,
            content=self.content,
            metadata=ChunkMetadata(
                source=self.source,
                created_at=self.created_at,
                file_type=self.file_type,
                chunk_index=self.chunk_index,
                total_chunks=self.total_chunks,
            ),
        )
