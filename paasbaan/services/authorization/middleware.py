"""
HTTP middleware enforcing authorization decisions.
"""
from typing import Any, Callable

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from paasbaan.core.errors import ErrorCode, error_response
from paasbaan.core.exceptions import StoreError
from paasbaan.services.authorization.decision import AuthorizationEngine


class AccessControlMiddleware(BaseHTTPMiddleware):
    """
    Rejects requests to protected routes that the caller may not access.

    Allowed requests on protected routes get ``request.state.user_id`` and
    ``request.state.user_permissions`` for downstream handlers. Requests to
    undeclared routes pass through untouched.
    """

    def __init__(
        self,
        app: ASGIApp,
        engine: AuthorizationEngine,
        logger: Any = None,
    ):
        """
        Initialize access control middleware.

        Args:
            app: ASGI application
            engine: Decision engine evaluating each request
            logger: Logger honouring the instance logging option
        """
        super().__init__(app)
        self.engine = engine
        self.logger = logger or structlog.get_logger(__name__)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        try:
            decision = await self.engine.decide(
                request.url.path,
                request.method,
                request.headers.get("authorization"),
            )
        except StoreError as e:
            self.logger.error(
                "authorization_store_error",
                method=request.method,
                path=request.url.path,
                error=e.message,
            )
            return JSONResponse(
                status_code=500,
                content=error_response(ErrorCode.SYS_DATABASE_ERROR),
            )

        if not decision.allowed:
            return JSONResponse(
                status_code=decision.status_code,
                content=error_response(decision.reason),
            )

        if decision.user_id is not None:
            request.state.user_id = decision.user_id
            request.state.user_permissions = sorted(decision.permissions)

        return await call_next(request)
