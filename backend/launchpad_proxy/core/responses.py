from typing import Dict, Optional

from fastapi.responses import JSONResponse

from launchpad_proxy.core.errors import ProxyError


def error_response(
    status_code: int,
    message: str,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """
    Create a structured error response.

    Args:
        status_code: HTTP status code
        message: Client-facing error message
        headers: Extra response headers

    Returns:
        JSONResponse with body {"error": message}
    """
    return JSONResponse(
        status_code=status_code,
        content={"error": message},
        headers=headers,
    )


def proxy_error_response(exc: ProxyError) -> JSONResponse:
    """Render a ProxyError as its structured response."""
    return error_response(exc.status_code, exc.message, exc.headers or None)
