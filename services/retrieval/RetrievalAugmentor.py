from enum import Enum

from pydantic import BaseModel, Field

from services.vectorstore.VectorStoreManager import VectorStoreManager
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.isolation_paths import mask_key
from shared.models.chat import ChatMessage
from shared.models.errors import BridgeError
from shared.models.search import SearchHit

CONTEXT_DELIMITER = "\n\n---\n\n"
CONTEXT_TEMPLATE = (
    "You are a helpful assistant. Use the following context to answer the user's question. "
    "If the answer cannot be found in the context, say so honestly.\n\n"
    "Context:\n{context}\n\n"
    "Answer the user's question based on the above context."
)


class RetrievalStatus(str, Enum):
    FOUND = "found"
    EMPTY = "empty"
    FAILED = "failed"
    SKIPPED = "skipped"


class RetrievalOutcome(BaseModel):
    """Result of augmenting a chat message sequence.

    Only FOUND carries a rewritten message list; for every other status
    `messages` is the input sequence unchanged.
    """

    status: RetrievalStatus
    messages: list[ChatMessage]
    hits: list[SearchHit] = Field(default_factory=list)
    error: str | None = None


def build_context_message(hits: list[SearchHit]) -> ChatMessage:
    context = CONTEXT_DELIMITER.join(
        f"[Source: {hit.chunk.metadata.source}]\n{hit.chunk.content}" for hit in hits
    )
    return ChatMessage(role="system", content=CONTEXT_TEMPLATE.format(context=context))


class RetrievalAugmentor:
    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        store_manager: VectorStoreManager,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed_client = embed_client
        self._store_manager = store_manager
        self.default_limit = int(helper_config.get_number_val("RETRIEVAL_TOP_K", default=3, min_val=1))

    async def augment(self, messages: list[ChatMessage], isolation_key: str | None, limit: int | None = None) -> RetrievalOutcome:
        """Inject the chunks most relevant to the latest user message as system context.

        The most recent user message is embedded and searched in the caller's
        store. When at least one chunk is found, the result starts with a single
        synthesized system message and every earlier system message is dropped.
        A failed lookup is logged and degrades to plain chat.

        Args:
            messages (list[ChatMessage]): The conversation as sent by the caller.
            isolation_key (str | None): The caller's isolation key.
            limit (int | None): Number of chunks to retrieve (default RETRIEVAL_TOP_K).

        Returns:
            RetrievalOutcome: The status and the message sequence to send to the model.
        """
        query = next((m.content for m in reversed(messages) if m.role == "user"), None)
        if query is None:
            return RetrievalOutcome(status=RetrievalStatus.SKIPPED, messages=messages)

        try:
            store = await self._store_manager.get_store(isolation_key)
            query_vector = (await self._embed_client.do_embed([query]))[0]
            hits = await store.search(query_vector, limit or self.default_limit)
        except BridgeError as exc:
            self.logging.error("Retrieval for %s failed, answering without context: %s", mask_key(isolation_key), exc.message)
            return RetrievalOutcome(status=RetrievalStatus.FAILED, messages=messages, error=exc.message)

        if not hits:
            self.logging.debug("No context found for %s.", mask_key(isolation_key))
            return RetrievalOutcome(status=RetrievalStatus.EMPTY, messages=messages)

        augmented = [build_context_message(hits)] + [m for m in messages if m.role != "system"]
        self.logging.info("Injected %d context chunk(s) for %s.", len(hits), mask_key(isolation_key))
        return RetrievalOutcome(status=RetrievalStatus.FOUND, messages=augmented, hits=hits)
