from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from shared.helper.isolation_paths import mask_key
from shared.logging.logging_setup import tenant_context


class IsolationMiddleware:
    """Resolves the isolation key of every HTTP request.

    The key is stored on request.state.isolation_key for the routes, and the
    resolver's response headers (the echoed x-session-id in session mode) are
    added to the response, streaming responses included. Log lines written
    while the request is served carry the masked key. In custom mode a key
    already placed on request.state.isolation_key by an outer authentication
    middleware takes precedence over the x-isolation-key header.

    Implemented as plain ASGI middleware so streamed bodies pass through untouched.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        state = request.app.state
        asserted_key = getattr(request.state, "isolation_key", None)
        result = await state.isolation_resolver.resolve(request.headers, asserted_key=asserted_key)
        request.state.isolation_key = result.key

        janitor = getattr(state, "session_janitor", None)
        if janitor is not None:
            janitor.maybe_sweep()

        async def send_with_isolation_headers(message: Message) -> None:
            if message["type"] == "http.response.start" and result.response_headers:
                headers = MutableHeaders(scope=message)
                for name, value in result.response_headers.items():
                    headers[name] = value
            await send(message)

        token = tenant_context.set(mask_key(result.key))
        try:
            await self.app(scope, receive, send_with_isolation_headers)
        finally:
            tenant_context.reset(token)
