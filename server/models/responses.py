from pydantic import BaseModel, ConfigDict, Field

from shared.models.document import ChunkMetadata, DocumentSummary


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: str
    version: str


class ChatResponse(BaseModel):
    content: str
    model: str


class ModelsResponse(BaseModel):
    models: list[dict]


class UploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    document_id: str = Field(alias="documentId")
    chunks: int


class SearchResultItem(BaseModel):
    id: str
    title: str
    content: str
    metadata: ChunkMetadata
    score: float


class DocumentSearchResponse(BaseModel):
    query: str
    results: list[SearchResultItem]


class DocumentListResponse(BaseModel):
    documents: list[DocumentSummary]


class DeleteDocumentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    deleted_chunks: int = Field(alias="deletedChunks")


class ClearDocumentsResponse(BaseModel):
    message: str
