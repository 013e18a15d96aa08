from fastapi import APIRouter, Depends, File, Request, UploadFile

from server.dependencies.isolation import get_isolation_key
from server.models.requests import SearchRequest
from server.models.responses import (
    ClearDocumentsResponse,
    DeleteDocumentResponse,
    DocumentListResponse,
    DocumentSearchResponse,
    UploadResponse,
)
from shared.models.errors import InvalidRequestError

router = APIRouter(prefix="/documents", tags=["documents"])


@router.post("/upload")
async def upload_document(
    request: Request,
    file: UploadFile | None = File(default=None),
    isolation_key: str | None = Depends(get_isolation_key),
) -> UploadResponse:
    """Upload a PDF, TXT or DOCX file into the caller's store.

    Args:
        request (Request): FastAPI request (provides app.state.document_service).
        file (UploadFile | None): The multipart field "file".
        isolation_key (str | None): The caller's isolation key.

    Returns:
        UploadResponse: Document id and number of stored chunks.
    """
    if file is None:
        raise InvalidRequestError("No file uploaded")
    document_service = request.app.state.document_service
    try:
        return await document_service.upload(file.file, file.filename, file.content_type, isolation_key)
    finally:
        await file.close()


@router.post("/search")
async def search_documents(
    request: Request,
    body: SearchRequest,
    isolation_key: str | None = Depends(get_isolation_key),
) -> DocumentSearchResponse:
    document_service = request.app.state.document_service
    return await document_service.search(body.query, body.limit, isolation_key)


@router.get("/list")
async def list_documents(
    request: Request,
    isolation_key: str | None = Depends(get_isolation_key),
) -> DocumentListResponse:
    document_service = request.app.state.document_service
    return await document_service.list_documents(isolation_key)


@router.delete("/{document_id}")
async def delete_document(
    request: Request,
    document_id: str,
    isolation_key: str | None = Depends(get_isolation_key),
) -> DeleteDocumentResponse:
    """Delete all chunks of one document; 404 if the caller's store has none."""
    document_service = request.app.state.document_service
    return await document_service.delete_document(document_id, isolation_key)


@router.delete("")
async def clear_documents(
    request: Request,
    isolation_key: str | None = Depends(get_isolation_key),
) -> ClearDocumentsResponse:
    """Remove every document of the caller."""
    document_service = request.app.state.document_service
    return await document_service.clear_documents(isolation_key)
