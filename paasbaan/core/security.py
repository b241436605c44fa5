"""
Bearer token verification.

Token issuance belongs to the host application; this module only verifies.
"""
from typing import Any, Optional, Sequence

from jose import JWTError, jwt

from paasbaan.domain.interfaces.base import ITokenVerifier

BEARER_PREFIX = "Bearer "


class JoseTokenVerifier(ITokenVerifier):
    """Verify HMAC/RSA signed JWTs with python-jose."""

    def __init__(self, algorithms: Sequence[str] = ("HS256",)):
        self.algorithms = list(algorithms)

    def verify(self, token: str, secret: str) -> Optional[dict[str, Any]]:
        """
        Decode and verify a JWT.

        Args:
            token: Encoded token
            secret: Signing secret or public key

        Returns:
            Claims if the token is valid, otherwise None
        """
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=self.algorithms,
            )
        except JWTError:
            return None
        if not isinstance(payload, dict):
            return None
        return payload


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """
    Extract the token from an ``Authorization`` header value.

    Returns None unless the header has the exact ``Bearer <token>`` shape.
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token or " " in token:
        return None
    return token
