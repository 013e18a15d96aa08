from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from server.dependencies.isolation import get_isolation_key
from server.models.requests import ChatRequest
from server.models.responses import ChatResponse, ModelsResponse

router = APIRouter(prefix="/chat", tags=["chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post("/stream")
async def chat_stream(
    request: Request,
    body: ChatRequest,
    isolation_key: str | None = Depends(get_isolation_key),
) -> StreamingResponse:
    """Stream a chat completion as server-sent events.

    Args:
        request (Request): FastAPI request (provides app.state.chat_service).
        body (ChatRequest): Messages, model and the ragEnabled switch.
        isolation_key (str | None): The caller's isolation key.

    Returns:
        StreamingResponse: `message` events per token, then `done`; `error` on failure.
    """
    chat_service = request.app.state.chat_service
    return StreamingResponse(
        chat_service.stream_events(request, body, isolation_key),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("")
async def chat(
    request: Request,
    body: ChatRequest,
    isolation_key: str | None = Depends(get_isolation_key),
) -> ChatResponse:
    """Answer a chat request in one piece."""
    chat_service = request.app.state.chat_service
    return await chat_service.complete(body, isolation_key)


@router.get("/models")
async def list_models(request: Request) -> ModelsResponse:
    """List the models of the chat backend, or a static fallback list if it is unreachable."""
    chat_service = request.app.state.chat_service
    return await chat_service.list_models()
