"""
Per-request authorization decisions.
"""
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Optional

import structlog

from paasbaan.core.config import RouteRule
from paasbaan.core.errors import ErrorCode, ErrorMessages
from paasbaan.core.exceptions import ValidationError
from paasbaan.core.logging import log_decision_details
from paasbaan.core.security import JoseTokenVerifier, extract_bearer_token
from paasbaan.domain.interfaces.base import ITokenVerifier
from paasbaan.domain.schemas import coerce_id
from paasbaan.services.authorization.resolver import PermissionResolver, holds_super_admin
from paasbaan.services.authorization.routes import RouteMatcher


@dataclass(frozen=True)
class AuthorizationDecision:
    """Outcome of evaluating one request."""
    allowed: bool
    status_code: Optional[int] = None
    reason: Optional[ErrorCode] = None
    user_id: Optional[int] = None
    permissions: FrozenSet[str] = field(default_factory=frozenset)
    route: Optional[RouteRule] = None

    @property
    def message(self) -> Optional[str]:
        return ErrorMessages.get(self.reason) if self.reason else None

    @classmethod
    def unauthenticated(cls, reason: ErrorCode, route: RouteRule) -> "AuthorizationDecision":
        return cls(allowed=False, status_code=401, reason=reason, route=route)


class AuthorizationEngine:
    """
    Combines route matching, token verification and permission resolution.

    Decision order:
        1. Undeclared route: allow without authentication.
        2. Missing bearer token: deny 401.
        3. Token fails verification or has no user id claim: deny 401.
        4. User holds super_admin: allow.
        5. User holds any permission the route requires: allow.
        6. Otherwise deny 403.

    Persistence failures while resolving permissions propagate as StoreError.
    """

    def __init__(
        self,
        matcher: RouteMatcher,
        resolver: PermissionResolver,
        secret: str,
        verifier: Optional[ITokenVerifier] = None,
        user_id_key: str = "userId",
        logger: Any = None,
    ):
        self.matcher = matcher
        self.resolver = resolver
        self.secret = secret
        self.verifier = verifier or JoseTokenVerifier()
        self.user_id_key = user_id_key
        self.logger = logger or structlog.get_logger(__name__)

    async def decide(
        self,
        path: str,
        method: str,
        authorization: Optional[str] = None,
    ) -> AuthorizationDecision:
        """
        Decide whether a request may proceed.

        Args:
            path: Request path
            method: HTTP method
            authorization: Raw ``Authorization`` header value

        Returns:
            The decision; allowed decisions on protected routes carry the
            user id and resolved permissions
        """
        route = self.matcher.match(path, method)
        if route is None:
            return AuthorizationDecision(allowed=True)

        context = log_decision_details(method.upper(), path, route=route.path)

        token = extract_bearer_token(authorization)
        if token is None:
            self.logger.info("authorization_denied", reason="missing_token", **context)
            return AuthorizationDecision.unauthenticated(ErrorCode.AUTH_MISSING_TOKEN, route)

        claims = self.verifier.verify(token, self.secret)
        if claims is None:
            self.logger.info("authorization_denied", reason="invalid_token", **context)
            return AuthorizationDecision.unauthenticated(ErrorCode.AUTH_INVALID_TOKEN, route)

        try:
            user_id = coerce_id(claims.get(self.user_id_key), self.user_id_key)
        except ValidationError:
            self.logger.info("authorization_denied", reason="missing_user_id", **context)
            return AuthorizationDecision.unauthenticated(ErrorCode.AUTH_MISSING_USER_ID, route)

        context = log_decision_details(method.upper(), path, user_id=user_id, route=route.path)
        held = frozenset(await self.resolver.resolve(user_id))

        if holds_super_admin(held) or held.intersection(route.permissions):
            self.logger.debug("authorization_granted", **context)
            return AuthorizationDecision(
                allowed=True,
                user_id=user_id,
                permissions=held,
                route=route,
            )

        self.logger.info(
            "authorization_denied",
            reason="insufficient_permissions",
            required=route.permissions,
            **context,
        )
        return AuthorizationDecision(
            allowed=False,
            status_code=403,
            reason=ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS,
            user_id=user_id,
            permissions=held,
            route=route,
        )
