from contextvars import ContextVar
from typing import Optional
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-Id"

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id (client supplied or generated) for log correlation."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
