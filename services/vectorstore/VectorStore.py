from pydantic import ValidationError

from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import VectorPoint, make_point_id
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import DocumentChunk
from shared.models.errors import CollaboratorError, StoreInitializationError
from shared.models.search import SearchHit

UPSERT_BATCH_SIZE = 100


class VectorStore:
    """Handle on one tenant's vector store, backed by one collection of the RAG backend.

    Handles are created and cached by the VectorStoreManager; call initialize()
    once before any other operation.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        rag_client: RAGClientInterface,
        store_key: str,
        collection: str,
        vector_size: int,
        distance: str = "Cosine",
    ) -> None:
        self.logging = helper_config.get_logger()
        self._rag_client = rag_client
        self.store_key = store_key
        self.collection = collection
        self.vector_size = vector_size
        self.distance = distance

    def __repr__(self) -> str:
        return f"VectorStore(store_key={self.store_key!r}, collection={self.collection!r})"

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def initialize(self) -> None:
        """Make sure the backing collection exists.

        Raises:
            StoreInitializationError: If the collection can neither be found nor created.
        """
        try:
            if await self._rag_client.do_existence_check(self.collection):
                self.logging.debug("Opened existing collection %r for store %s.", self.collection, self.store_key)
                return
            await self._rag_client.do_create_collection(self.collection, self.vector_size, self.distance)
            self.logging.info("Created collection %r (size %d, %s).", self.collection, self.vector_size, self.distance)
        except CollaboratorError as exc:
            raise StoreInitializationError(
                f"Failed to initialize vector store: {exc.message}",
                store_key=self.store_key,
            ) from exc

    async def clear(self) -> None:
        """Remove every chunk. The collection stays in place, so concurrent requests keep working."""
        await self._rag_client.do_delete_points_by_filter(self.collection, self._rag_client.get_match_all_filter())

    async def destroy(self) -> None:
        """Remove the backing collection. The handle must not be used afterwards."""
        await self._rag_client.do_delete_collection(self.collection)

    ##########################################
    ################ WRITE ###################
    ##########################################

    async def insert(self, chunks: list[DocumentChunk]) -> int:
        """Store chunks together with their vectors.

        Args:
            chunks (list[DocumentChunk]): Chunks with `vector` set.

        Returns:
            int: Number of chunks stored.

        Raises:
            ValueError: If a chunk has no vector or a vector of the wrong size.
        """
        points: list[dict] = []
        for chunk in chunks:
            if chunk.vector is None or len(chunk.vector) != self.vector_size:
                raise ValueError(
                    f"Chunk {chunk.id} has no {self.vector_size}-dimensional vector "
                    f"(got {len(chunk.vector) if chunk.vector is not None else None})."
                )
            points.append({
                "id": make_point_id(chunk.id),
                "vector": chunk.vector,
                "payload": VectorPoint.from_chunk(chunk).model_dump(),
            })

        for batch_start in range(0, len(points), UPSERT_BATCH_SIZE):
            await self._rag_client.do_upsert_points(self.collection, points[batch_start: batch_start + UPSERT_BATCH_SIZE])
        return len(points)

    async def delete_by_id(self, chunk_id: str) -> None:
        await self._rag_client.do_delete_points(self.collection, [make_point_id(chunk_id)])

    async def delete_by_ids(self, chunk_ids: list[str]) -> None:
        await self._rag_client.do_delete_points(self.collection, [make_point_id(chunk_id) for chunk_id in chunk_ids])

    async def delete_by_document_prefix(self, document_id: str) -> int:
        """Delete every chunk whose id starts with "{document_id}-chunk-".

        Documents whose id merely shares a prefix with document_id are untouched.

        Returns:
            int: Number of chunks deleted (0 if the document does not exist).
        """
        # every chunk "{document_id}-chunk-N" carries document_id in its payload
        document_filter = self._rag_client.get_match_filter("document_id", document_id)
        deleted = await self._rag_client.do_count(self.collection, document_filter)
        if deleted:
            await self._rag_client.do_delete_points_by_filter(self.collection, document_filter)
        return deleted

    ##########################################
    ################# READ ###################
    ##########################################

    async def search(self, vector: list[float], limit: int) -> list[SearchHit]:
        """Return the chunks nearest to the query vector, best match first.

        Score is cosine similarity: higher means more similar.
        """
        hits = await self._rag_client.do_search(self.collection, vector, limit)
        results: list[SearchHit] = []
        for hit in hits:
            chunk = self._to_chunk(hit.get("payload") or {}, hit.get("id"))
            if chunk is not None:
                results.append(SearchHit(chunk=chunk, score=hit.get("score", 0.0)))
        return results

    async def list_all(self) -> list[DocumentChunk]:
        chunks: list[DocumentChunk] = []
        async for point in self._rag_client.iter_points(self.collection):
            chunk = self._to_chunk(point.get("payload") or {}, point.get("id"))
            if chunk is not None:
                chunks.append(chunk)
        return chunks

    def _to_chunk(self, payload: dict, point_id) -> DocumentChunk | None:
        try:
            return VectorPoint.model_validate(payload).to_chunk()
        except ValidationError as exc:
            self.logging.warning("Skipping point %s in %r with malformed payload: %s", point_id, self.collection, exc)
            return None
