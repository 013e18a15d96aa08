from fastapi import Request


async def get_isolation_key(request: Request) -> str | None:
    """Return the isolation key resolved by the IsolationMiddleware for this request.

    Args:
        request (Request): The FastAPI request object.

    Returns:
        str | None: The caller's isolation key, None for the shared store.
    """
    return getattr(request.state, "isolation_key", None)
