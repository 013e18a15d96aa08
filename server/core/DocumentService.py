import asyncio
import os
import secrets
import time
import uuid
from datetime import datetime, timezone
from typing import BinaryIO

from services.chunking.ChunkingEngine import ChunkingEngine
from services.vectorstore.VectorStoreManager import VectorStoreManager
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.extract.TextExtractor import TextExtractor, is_allowed_upload
from shared.helper.HelperConfig import HelperConfig
from shared.helper.isolation_paths import get_isolated_path, mask_key
from shared.models.document import ChunkMetadata, DocumentChunk, DocumentSummary, get_document_id, make_chunk_id
from shared.models.errors import BridgeError, CollaboratorError, InvalidRequestError, NotFoundError
from server.models.responses import (
    ClearDocumentsResponse,
    DeleteDocumentResponse,
    DocumentListResponse,
    DocumentSearchResponse,
    SearchResultItem,
    UploadResponse,
)

COPY_BUFFER_SIZE = 1024 * 1024
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024


class DocumentService:
    """Handles the document pipeline: upload -> extract -> chunk -> embed -> store,
    plus search, listing and deletion within the caller's store."""

    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        store_manager: VectorStoreManager,
        chunking_engine: ChunkingEngine,
        text_extractor: TextExtractor,
        upload_root: str,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed_client = embed_client
        self._store_manager = store_manager
        self._chunking_engine = chunking_engine
        self._text_extractor = text_extractor
        self.upload_root = upload_root
        self.max_file_size = int(helper_config.get_number_val("UPLOAD_MAX_FILE_SIZE", default=DEFAULT_MAX_FILE_SIZE, min_val=1))

    ##########################################
    ################ UPLOAD ##################
    ##########################################

    async def upload(self, file_obj: BinaryIO, file_name: str, content_type: str | None, isolation_key: str | None) -> UploadResponse:
        """Store, process and index an uploaded document.

        The upload is written below the caller's upload directory, processed,
        and removed again on every exit path. If chunks were already stored when
        a later step fails, they are deleted again on a best-effort basis.

        Args:
            file_obj (BinaryIO): The uploaded file's content.
            file_name (str): Original file name of the upload.
            content_type (str | None): The declared content type.
            isolation_key (str | None): The caller's isolation key.

        Returns:
            UploadResponse: The new document id and its chunk count.

        Raises:
            InvalidRequestError: Missing/disallowed/oversize file or no extractable text.
            CollaboratorError: Extraction, embedding or storage failed.
            StoreInitializationError: The caller's store cannot be created.
        """
        file_name = os.path.basename(file_name or "")
        if not file_name:
            raise InvalidRequestError("No file uploaded")
        if not is_allowed_upload(file_name, content_type):
            raise InvalidRequestError("Invalid file type. Only PDF, TXT, and DOCX are allowed.")

        upload_dir = get_isolated_path(self.upload_root, isolation_key)
        stored_path = os.path.join(upload_dir, f"{int(time.time() * 1000)}-{secrets.token_hex(6)}-{file_name}")
        document_id = str(uuid.uuid4())
        inserted_ids: list[str] = []
        store = None
        try:
            await asyncio.to_thread(self._store_upload, file_obj, upload_dir, stored_path)

            processed = await self._text_extractor.extract(stored_path, file_name)
            texts = self._chunking_engine.chunk(processed.content)
            if not texts:
                raise InvalidRequestError("The document contains no extractable text.")

            store = await self._store_manager.get_store(isolation_key)
            vectors = await self._embed_client.do_embed(texts)

            created_at = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
            chunks = [
                DocumentChunk(
                    id=make_chunk_id(document_id, index),
                    title=processed.title,
                    content=text,
                    metadata=ChunkMetadata(
                        source=file_name,
                        created_at=created_at,
                        file_type=processed.file_type,
                        chunk_index=index,
                        total_chunks=len(texts),
                    ),
                    vector=vector,
                )
                for index, (text, vector) in enumerate(zip(texts, vectors))
            ]
            inserted_ids = [chunk.id for chunk in chunks]
            try:
                await store.insert(chunks)
            except ValueError as exc:
                raise CollaboratorError(str(exc), backend=self._embed_client.get_engine_name()) from exc

        except Exception:
            if inserted_ids and store is not None:
                await self._discard_chunks(store, inserted_ids)
            raise
        finally:
            await asyncio.to_thread(self._remove_file, stored_path)

        self.logging.info(
            "Stored document %s ('%s') for %s: %d chunk(s).",
            document_id, file_name, mask_key(isolation_key), len(chunks),
        )
        return UploadResponse(
            message="Document uploaded and processed successfully",
            document_id=document_id,
            chunks=len(chunks),
        )

    def _store_upload(self, file_obj: BinaryIO, upload_dir: str, stored_path: str) -> None:
        os.makedirs(upload_dir, exist_ok=True)
        written = 0
        with open(stored_path, "wb") as out:
            while True:
                block = file_obj.read(COPY_BUFFER_SIZE)
                if not block:
                    break
                written += len(block)
                if written > self.max_file_size:
                    raise InvalidRequestError(f"File too large. Maximum size is {self.max_file_size} bytes.")
                out.write(block)
        if written == 0:
            raise InvalidRequestError("Uploaded file is empty.")

    def _remove_file(self, path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            self.logging.warning("Could not remove temporary upload %s: %s", path, exc)

    async def _discard_chunks(self, store, chunk_ids: list[str]) -> None:
        try:
            await store.delete_by_ids(chunk_ids)
            self.logging.info("Removed %d partially stored chunk(s).", len(chunk_ids))
        except BridgeError as exc:
            self.logging.error("Cleanup of partially stored chunks failed: %s", exc.message)

    ##########################################
    ################ SEARCH ##################
    ##########################################

    async def search(self, query: str, limit: int, isolation_key: str | None) -> DocumentSearchResponse:
        """Embed a query and return the nearest chunks of the caller's store.

        Score is cosine similarity, higher means more similar.
        """
        store = await self._store_manager.get_store(isolation_key)
        query_vector = (await self._embed_client.do_embed([query]))[0]
        hits = await store.search(query_vector, limit)

        self.logging.debug("Search for %s returned %d hit(s).", mask_key(isolation_key), len(hits))
        return DocumentSearchResponse(
            query=query,
            results=[
                SearchResultItem(
                    id=hit.chunk.id,
                    title=hit.chunk.title,
                    content=hit.chunk.content,
                    metadata=hit.chunk.metadata,
                    score=hit.score,
                )
                for hit in hits
            ],
        )

    ##########################################
    ################ LISTING #################
    ##########################################

    async def list_documents(self, isolation_key: str | None) -> DocumentListResponse:
        """Group the caller's chunks back into one entry per document id."""
        store = await self._store_manager.get_store(isolation_key)
        grouped: dict[str, DocumentSummary] = {}
        for chunk in await store.list_all():
            document_id = get_document_id(chunk.id)
            if document_id in grouped:
                continue
            grouped[document_id] = DocumentSummary(
                id=document_id,
                title=chunk.title,
                source=chunk.metadata.source,
                created_at=chunk.metadata.created_at,
                file_type=chunk.metadata.file_type,
                chunks=chunk.metadata.total_chunks,
            )
        return DocumentListResponse(documents=list(grouped.values()))

    ##########################################
    ################ DELETE ##################
    ##########################################

    async def delete_document(self, document_id: str, isolation_key: str | None) -> DeleteDocumentResponse:
        store = await self._store_manager.get_store(isolation_key)
        deleted = await store.delete_by_document_prefix(document_id)
        if deleted == 0:
            raise NotFoundError("Document not found")
        self.logging.info("Deleted document %s (%d chunk(s)) for %s.", document_id, deleted, mask_key(isolation_key))
        return DeleteDocumentResponse(message="Document deleted successfully", deleted_chunks=deleted)

    async def clear_documents(self, isolation_key: str | None) -> ClearDocumentsResponse:
        await self._store_manager.clear_store(isolation_key)
        return ClearDocumentsResponse(message="All documents cleared successfully")
