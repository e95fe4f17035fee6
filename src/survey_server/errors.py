"""Global exception handlers — map SDK exceptions to HTTP status codes.

The SDK raises ``SurveyError`` (a ``ValueError``) for conditions such as an
unknown call id or a retry of a pending call.  Rather than catching these
in every route, we install global handlers that inspect the message and
pick the right HTTP status code.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

# --- Keyword patterns in ValueError messages and their HTTP status codes ---
# Checked in order; first match wins.
_VALUE_ERROR_PATTERNS: list[tuple[str, int]] = [
    # Retry of a call that is already pending
    ("already", 409),
    # Unknown call / session
    ("not found", 404),
    # Channel not connected
    ("not connected", 503),
]


# --- Client-safe messages keyed by HTTP status code ---
# Internal details (user ids, call ids) stay in the server log; the client
# receives only a generic description.
_SAFE_MESSAGES: dict[int, str] = {
    404: "Resource not found",
    409: "Resource already in requested state",
    400: "Invalid request",
    503: "Messaging channel unavailable",
}


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Map SDK ``ValueError`` to a contextual HTTP error response.

    The raw exception message is logged server-side but never sent to the
    client.
    """
    msg = str(exc)
    status = 400  # default
    for pattern, code in _VALUE_ERROR_PATTERNS:
        if pattern in msg.lower():
            status = code
            break

    logger.warning("ValueError [%d] at %s: %s", status, request.url, msg)
    safe_detail = _SAFE_MESSAGES.get(status, "Invalid request")
    return JSONResponse(status_code=status, content={"detail": safe_detail})


async def key_error_handler(request: Request, exc: KeyError) -> JSONResponse:
    logger.warning("KeyError at %s: %s", request.url, exc)
    return JSONResponse(status_code=404, content={"detail": "Resource not found"})


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — log full traceback, return 500."""
    logger.exception("Unhandled exception at %s", request.url)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
