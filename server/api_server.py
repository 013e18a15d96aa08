"""FastAPI application entry point for the bento RAG bridge."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.clients.ClientInterface import ClientInterface
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.llm.LLMClientManager import LLMClientManager
from shared.extract.TextExtractor import TextExtractor
from shared.models.errors import BridgeError, CollaboratorError
from services.chunking.ChunkingEngine import ChunkingEngine
from services.isolation.IsolationResolver import SESSION_HEADER, IsolationMode, IsolationResolver
from services.isolation.SessionJanitor import SessionJanitor
from services.isolation.SessionRegistry import DEFAULT_SESSION_EXPIRY_SECONDS, SessionRegistry
from services.retrieval.RetrievalAugmentor import RetrievalAugmentor
from services.vectorstore.VectorStoreManager import VectorStoreManager
from server.core.ChatService import ChatService
from server.core.DocumentService import DocumentService
from server.middleware.IsolationMiddleware import IsolationMiddleware
from server.models.responses import ErrorResponse, HealthResponse
from server.routers.ChatRouter import router as chat_router
from server.routers.DocumentRouter import router as document_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


def get_data_dirs(helper_config: HelperConfig) -> tuple[str, str]:
    """Return the upload root and the sessions directory.

    Both default to subdirectories of DATA_DIR (default "<ROOT_DIR>/data").
    """
    data_dir = helper_config.get_string_val("DATA_DIR", default=os.path.join(os.getenv("ROOT_DIR", os.getcwd()), "data"))
    upload_root = helper_config.get_string_val("UPLOAD_DIR", default=os.path.join(data_dir, "uploads"))
    sessions_dir = helper_config.get_string_val("SESSIONS_DIR", default=os.path.join(data_dir, "sessions"))
    return os.path.abspath(upload_root), os.path.abspath(sessions_dir)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    helper_config: HelperConfig = app.state.helper_config
    isolation_mode = IsolationMode(
        helper_config.get_choice_val("ISOLATION_MODE", [mode.value for mode in IsolationMode], default=IsolationMode.NONE.value)
    )
    upload_root, sessions_dir = get_data_dirs(helper_config)

    transport = app.state.transport
    rag_client = RAGClientManager(helper_config=helper_config, transport=transport).get_client()
    embed_client = EmbedClientManager(helper_config=helper_config, transport=transport).get_client()
    llm_client = LLMClientManager(helper_config=helper_config, transport=transport).get_client()
    clients: list[ClientInterface] = [rag_client, embed_client, llm_client]

    logging.info("Booting all clients...")
    for client in clients:
        await client.boot()
    logging.info("All clients booted successfully.")

    session_janitor: SessionJanitor | None = None
    try:
        await check_connections(clients)
        vector_size, distance = await embed_client.do_fetch_embedding_vector_size()

        session_registry: SessionRegistry | None = None
        if isolation_mode == IsolationMode.SESSION:
            session_registry = SessionRegistry(
                helper_config=helper_config,
                sessions_dir=sessions_dir,
                expiry_seconds=helper_config.get_number_val("SESSION_EXPIRY_SECONDS", default=DEFAULT_SESSION_EXPIRY_SECONDS, min_val=1),
            )
            await session_registry.load()

        store_manager = VectorStoreManager(
            helper_config=helper_config,
            rag_client=rag_client,
            vector_size=vector_size,
            distance=distance,
            isolation_mode=isolation_mode,
        )

        app.state.rag_client = rag_client
        app.state.embed_client = embed_client
        app.state.llm_client = llm_client
        app.state.session_registry = session_registry
        app.state.store_manager = store_manager
        app.state.isolation_resolver = IsolationResolver(
            helper_config=helper_config,
            mode=isolation_mode,
            session_registry=session_registry,
        )
        app.state.document_service = DocumentService(
            helper_config=helper_config,
            embed_client=embed_client,
            store_manager=store_manager,
            chunking_engine=ChunkingEngine(helper_config=helper_config),
            text_extractor=TextExtractor(helper_config=helper_config),
            upload_root=upload_root,
        )
        app.state.chat_service = ChatService(
            helper_config=helper_config,
            llm_client=llm_client,
            retrieval_augmentor=RetrievalAugmentor(
                helper_config=helper_config,
                embed_client=embed_client,
                store_manager=store_manager,
            ),
        )

        if session_registry is not None:
            session_janitor = SessionJanitor(
                helper_config=helper_config,
                registry=session_registry,
                store_manager=store_manager,
                upload_root=upload_root,
                interval_seconds=helper_config.get_number_val("SESSION_SWEEP_INTERVAL_SECONDS", default=3600, min_val=1),
                probability=helper_config.get_number_val("SESSION_SWEEP_PROBABILITY", default=0.01, min_val=0, max_val=1),
            )
            session_janitor.start()
        app.state.session_janitor = session_janitor

        logging.info(
            "Isolation mode '%s', vectors %d-dimensional (%s), uploads in %s.",
            isolation_mode.value, vector_size, distance, upload_root, color="cyan",
        )

        # while the app is running...
        yield

    finally:
        # when the app shuts down, stop the sweeper and close all client connections
        logging.info("Shutting down, closing all clients...")
        if session_janitor is not None:
            await session_janitor.stop()
        for client in clients:
            await client.close()
        logging.info("All clients closed.")


async def check_connections(clients: list[ClientInterface]) -> None:
    """Check connectivity to all configured backends on startup.

    The vector index is required; without it no store can be opened. An
    unreachable embedding or chat backend is only logged, the affected
    requests fail later with a collaborator error.

    Raises:
        RuntimeError: If the RAG backend is not reachable.
    """
    for client in clients:
        try:
            result: httpx.Response = await client.do_healthcheck()
            reachable, detail = result.is_success, f"status {result.status_code}"
        except CollaboratorError as exc:
            reachable, detail = False, exc.message

        if reachable:
            continue
        if client.get_client_type() == "rag":
            raise RuntimeError(f"RAG client '{client.__class__.__name__}' is not reachable ({detail}). Cannot serve requests.")
        logging.warning("%s client '%s' is not reachable (%s).", client.get_client_type().upper(), client.__class__.__name__, detail)


##########################################
########### EXCEPTION HANDLERS ###########
##########################################

def error_response(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    """Build the {"error": message} body every failed request answers with."""
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump(), headers=headers)


async def handle_bridge_error(request: Request, exc: BridgeError) -> JSONResponse:
    if exc.status_code >= 500:
        logging.error("%s on %s %s: %s", exc.__class__.__name__, request.method, request.url.path, exc.message)
    return error_response(exc.status_code, exc.message)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if not errors:
        return error_response(400, "Invalid request")
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid request: {location}: {first.get('msg')}" if location else f"Invalid request: {first.get('msg')}"
    return error_response(400, message)


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logging.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return error_response(500, "Internal server error")


def create_app(transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        transport (httpx.AsyncBaseTransport | None): Transport for every backend
            client instead of the network (e.g. httpx.MockTransport in tests).

    Returns:
        FastAPI: The configured application; backends connect in its lifespan.
    """
    helper_config = HelperConfig(logger=logging)
    api_prefix = helper_config.get_string_val("API_PREFIX", default="/api").rstrip("/")
    if api_prefix and not api_prefix.startswith("/"):
        api_prefix = "/" + api_prefix
    cors_origins = helper_config.get_list_val("CORS_ORIGINS", default=["*"])

    app = FastAPI(
        title="bento_rag_bridge",
        description=(
            "Multi-tenant retrieval-augmented chat bridge. Documents are uploaded, "
            "chunked, embedded and stored per isolation key; chat requests can be "
            "answered with context retrieved from the caller's own store."
        ),
        version=app_version,
        lifespan=lifespan,
    )
    app.state.logging = logging
    app.state.helper_config = helper_config
    app.state.transport = transport

    # the isolation middleware runs inside CORS so preflight requests never create sessions
    app.add_middleware(IsolationMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER],
    )

    app.add_exception_handler(BridgeError, handle_bridge_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    error_responses = {status: {"model": ErrorResponse} for status in (400, 404, 500)}
    api_router = APIRouter(prefix=api_prefix, responses=error_responses)
    api_router.include_router(chat_router)
    api_router.include_router(document_router)

    @api_router.get("/health", tags=["health"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", version=app_version)

    app.include_router(api_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "3001"))
    logging.info(
        "Starting bento_rag_bridge API Server v%s from root dir: %s on port %d...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
        port,
    )
    uvicorn.run(app, host="0.0.0.0", port=port)
