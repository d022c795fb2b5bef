"""Per-request structlog context: request id, route and the wallet being acted on."""

import re
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-Id"

_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")
_USER_PATH = re.compile(r"/users/(0x[0-9a-fA-F]{40})(?:/|$)")


def resolve_request_id(header_value: str | None) -> str:
    """Echo a well-formed client id, otherwise mint a UUID4."""
    if header_value and _VALID_REQUEST_ID.match(header_value):
        return header_value
    return str(uuid.uuid4())


def user_from_path(path: str) -> str | None:
    """Wallet address of a ``/users/{address}/...`` route, as sent by the client."""
    match = _USER_PATH.search(path)
    return match.group(1) if match else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind request id and user address so every ledger log line carries them."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        structlog.contextvars.clear_contextvars()
        context = {"request_id": request_id, "method": request.method, "path": request.url.path}
        user = user_from_path(request.url.path)
        if user:
            context["user_address"] = user
        structlog.contextvars.bind_contextvars(**context)

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
