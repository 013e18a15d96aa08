import json
from contextlib import aclosing
from typing import AsyncIterator

from fastapi import Request

from services.retrieval.RetrievalAugmentor import RetrievalAugmentor, RetrievalStatus
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.isolation_paths import mask_key
from shared.models.chat import ChatMessage
from shared.models.errors import BridgeError
from server.models.requests import ChatRequest
from server.models.responses import ChatResponse, ModelsResponse

DONE_MARKER = "[DONE]"


def format_sse(event: str, data: str) -> str:
    """Encode one server-sent event. Multi-line data is split over several data: lines."""
    lines = [f"event: {event}"]
    lines.extend(f"data: {line}" for line in data.split("\n"))
    return "\n".join(lines) + "\n\n"


class ChatService:
    """Chat pipeline: optional retrieval augmentation, then the completion backend."""

    def __init__(
        self,
        helper_config: HelperConfig,
        llm_client: LLMClientInterface,
        retrieval_augmentor: RetrievalAugmentor,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._llm_client = llm_client
        self._retrieval_augmentor = retrieval_augmentor

    async def prepare_messages(self, chat_request: ChatRequest, isolation_key: str | None) -> list[ChatMessage]:
        """Return the message sequence to send to the model.

        Without ragEnabled the caller's messages pass through untouched.
        """
        if not chat_request.rag_enabled:
            return chat_request.messages
        outcome = await self._retrieval_augmentor.augment(chat_request.messages, isolation_key)
        if outcome.status != RetrievalStatus.FOUND:
            self.logging.debug("Retrieval for %s: %s, sending messages unchanged.", mask_key(isolation_key), outcome.status.value)
        return outcome.messages

    ##########################################
    ############### STREAMING ################
    ##########################################

    async def stream_events(self, request: Request, chat_request: ChatRequest, isolation_key: str | None) -> AsyncIterator[str]:
        """Yield the SSE frames of a streamed answer.

        Tokens arrive as `message` events, followed by `done` with "[DONE]".
        A backend failure ends the stream with an `error` event carrying
        {"error": ...}. When the client disconnects the upstream stream is closed.
        """
        messages = await self.prepare_messages(chat_request, isolation_key)
        model = chat_request.model or self._llm_client.chat_model
        try:
            async with aclosing(self._llm_client.do_chat_stream(messages, model)) as tokens:
                async for token in tokens:
                    if await request.is_disconnected():
                        self.logging.info("Client of %s disconnected, stopping the completion stream.", mask_key(isolation_key))
                        return
                    yield format_sse("message", token)
            yield format_sse("done", DONE_MARKER)
        except BridgeError as exc:
            self.logging.error("Chat stream failed for %s: %s", mask_key(isolation_key), exc.message)
            yield format_sse("error", json.dumps({"error": exc.message}))

    ##########################################
    ############## NON-STREAMING #############
    ##########################################

    async def complete(self, chat_request: ChatRequest, isolation_key: str | None) -> ChatResponse:
        messages = await self.prepare_messages(chat_request, isolation_key)
        model = chat_request.model or self._llm_client.chat_model
        content = await self._llm_client.do_chat(messages, model)
        return ChatResponse(content=content, model=model)

    async def list_models(self) -> ModelsResponse:
        return ModelsResponse(models=await self._llm_client.do_fetch_models())
