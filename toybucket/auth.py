"""Bearer-token authentication for incoming bucket requests."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Sequence, Union

import jwt

from .models import USER_ID_KEY, RequestContext

_BEARER_PREFIX = "Bearer "
_HMAC_ALGORITHMS = ["HS256", "HS384", "HS512"]

Handler = Callable[[RequestContext, Any], Any]


class AuthError(Exception):
    """A request was refused; ``code`` tells why in RPC status terms."""

    UNAUTHENTICATED = "UNAUTHENTICATED"
    INTERNAL = "INTERNAL"

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def _authorization_values(
    metadata: Mapping[str, Sequence[str]]
) -> Sequence[str]:
    for key, values in metadata.items():
        if key.lower() == "authorization":
            return list(values)
    return []


def authenticate(ctx: RequestContext, secret: Union[str, bytes]) -> RequestContext:
    """Verify the bearer token in ``ctx`` and return a context carrying the user id.

    Raises :class:`AuthError` when the token is missing, invalid or lacks
    a numeric ``user_id`` claim.
    """
    if ctx.metadata is None:
        raise AuthError(AuthError.UNAUTHENTICATED, "missing metadata")

    headers = _authorization_values(ctx.metadata)
    if not headers or not headers[0].startswith(_BEARER_PREFIX):
        raise AuthError(
            AuthError.UNAUTHENTICATED, "missing or invalid authorization header"
        )

    encoded = headers[0][len(_BEARER_PREFIX):]
    try:
        claims = jwt.decode(encoded, secret, algorithms=_HMAC_ALGORITHMS)
    except jwt.PyJWTError as exc:
        raise AuthError(AuthError.UNAUTHENTICATED, "invalid token") from exc

    if not isinstance(claims, dict):
        raise AuthError(AuthError.INTERNAL, "cannot parse claims")

    raw_user_id: Optional[Any] = claims.get("user_id")
    if isinstance(raw_user_id, bool) or not isinstance(raw_user_id, (int, float)):
        raise AuthError(
            AuthError.INTERNAL, "user ID not found or invalid type in token"
        )

    return ctx.with_value(USER_ID_KEY, int(raw_user_id))


def jwt_interceptor(secret: Union[str, bytes]) -> Callable[[RequestContext, Any, Handler], Any]:
    """Return an interceptor that authenticates before calling the handler."""

    def intercept(ctx: RequestContext, request: Any, handler: Handler) -> Any:
        return handler(authenticate(ctx, secret), request)

    return intercept