"""
Fake auth middleware for local development.

Injects a single workspace id into every request's state so downstream
routes can scope data without real authentication.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

DEFAULT_WORKSPACE_ID = "default"


class FakeAuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request.state.workspace_id = request.headers.get("X-Workspace-Id") or DEFAULT_WORKSPACE_ID
        return await call_next(request)
