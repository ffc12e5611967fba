"""
Request dependencies

User identity comes from the X-User-ID header, which an upstream
gateway sets after authenticating the caller.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request

from billsync.orchestrator import AppComponents


def get_components(request: Request) -> AppComponents:
    return request.app.state.components


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """
    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="User ID not found in request")
    return x_user_id.strip()


def enforce_request_limit(request: Request) -> None:
    """
    Count the request against its client's window.

    Keyed by remote address. Disabled when the app was built without a
    throttle.

    Raises:
        RequestRateLimitExceeded: Too many requests in the current window
    """
    throttle = get_components(request).request_throttle
    if throttle is None:
        return
    throttle.hit(request.client.host if request.client else "unknown")
