"""Storage naming for isolation keys.

Every per-tenant resource follows the same layout below its root:

    <root>/shared/             : data of requests without an isolation key
    <root>/isolated/<segment>/ : data of one isolation key

The layout is used identically for the upload directory and for the vector
store collections, so removing ``isolated/<segment>`` under both roots removes
everything a tenant left behind.
"""

import hashlib
import os
import re

SHARED_SEGMENT = "shared"
ISOLATED_SEGMENT = "isolated"

_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def get_storage_segment(isolation_key: str) -> str:
    """Map an isolation key to a name that is safe as a path segment and collection name.

    Session keys and most custom keys are used as-is. Keys containing anything
    else (slashes, dots, whitespace, or more than 64 characters) are replaced by
    "h_" plus their SHA-256 digest. A hashed segment is 66 characters long, so it
    can never equal a key that was used as-is.

    Args:
        isolation_key (str): The tenant's isolation key.

    Returns:
        str: The storage segment for the key.
    """
    if _SAFE_SEGMENT.match(isolation_key):
        return isolation_key
    return "h_" + hashlib.sha256(isolation_key.encode("utf-8")).hexdigest()


def get_isolated_path(base_path: str, isolation_key: str | None = None) -> str:
    """Return the directory holding the data of an isolation key below base_path.

    Args:
        base_path (str): Root directory (e.g. the upload directory).
        isolation_key (str | None): The tenant's isolation key, None for shared data.

    Returns:
        str: "<base>/shared" or "<base>/isolated/<segment>".
    """
    if not isolation_key:
        return os.path.join(base_path, SHARED_SEGMENT)
    return os.path.join(base_path, ISOLATED_SEGMENT, get_storage_segment(isolation_key))


def mask_key(isolation_key: str | None) -> str:
    """Shorten an isolation key for log output."""
    if not isolation_key:
        return "<shared>"
    return isolation_key[:8] + "…" if len(isolation_key) > 12 else isolation_key
