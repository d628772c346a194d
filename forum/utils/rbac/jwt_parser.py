"""
JWT Parser - Verify the forum access token and extract the caller's identity

The access token is an HS256 JWT issued at login. It travels either in the
`accessToken` cookie or in an `Authorization: Bearer` header. Issuing tokens
is the login service's job; this module only verifies them.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

import jwt

from forum.utils.env import read_secret
from forum.utils.logging import get_logger
from forum.utils.rbac.audit import log_authentication_event

logger = get_logger(__name__)

DEFAULT_ALGORITHMS = ('HS256',)

REASON_AUTH_REQUIRED = 'Authentication required'
REASON_INVALID_TOKEN = 'Invalid token'


@dataclass(frozen=True)
class Identity:
    """Verified caller, threaded explicitly into every RBAC check."""

    id: str
    role: Optional[str]
    username: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def as_forwarded(self) -> Dict[str, Optional[str]]:
        """The fields handed to downstream handlers."""
        return {'id': self.id, 'role': self.role, 'username': self.username}


@dataclass
class AuthResult:
    """Outcome of authenticating one request."""

    authorized: bool
    public: bool = False
    user: Optional[Identity] = None
    reason: Optional[str] = None


class TokenError(Exception):
    """Raised when an access token cannot be verified."""
    pass


def extract_token(request, cookie_name: str = 'accessToken') -> Optional[str]:
    """
    Get the raw access token from a request.

    The cookie wins over the Authorization header when both are present.
    """
    token = request.cookies.get(cookie_name)
    if token:
        return token

    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        token = auth_header[len('Bearer '):].strip()
        return token or None

    return None


def decode_access_token(
    token: str,
    secret: Optional[str] = None,
    algorithms: Sequence[str] = DEFAULT_ALGORITHMS,
) -> Dict[str, Any]:
    """
    Verify a JWT's signature and expiry and return its claims.

    Args:
        token: Encoded JWT
        secret: HMAC key; defaults to the JWT_SECRET secret
        algorithms: Accepted signing algorithms

    Raises:
        TokenError: If the token is expired, malformed, or no secret is set
    """
    secret = secret or read_secret('JWT_SECRET')
    if not secret:
        raise TokenError("JWT_SECRET is not configured")

    try:
        return jwt.decode(token, secret, algorithms=list(algorithms))
    except jwt.ExpiredSignatureError as e:
        raise TokenError("Token has expired") from e
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Token verification failed: {e}") from e


def identity_from_claims(claims: Dict[str, Any]) -> Optional[Identity]:
    """
    Build an Identity from decoded claims.

    The user id may be carried as `_id`, `id`, `user_id` or `sub`; tokens
    without any of them do not identify a user and yield None.
    """
    if not isinstance(claims, dict):
        return None

    user_id = None
    for key in ('_id', 'id', 'user_id', 'sub'):
        value = claims.get(key)
        if value not in (None, ''):
            user_id = str(value)
            break

    if user_id is None:
        return None

    role = claims.get('role')
    return Identity(
        id=user_id,
        role=role if isinstance(role, str) else None,
        username=claims.get('username'),
        claims=dict(claims),
    )


def authorize(request, registry=None, secret: Optional[str] = None,
              algorithms: Sequence[str] = DEFAULT_ALGORITHMS) -> AuthResult:
    """
    Authenticate a request.

    Returns one of:
    - public route: AuthResult(authorized=True, public=True)
    - valid token:  AuthResult(authorized=True, user=Identity)
    - otherwise:    AuthResult(authorized=False, reason=...)
    """
    if registry is None:
        from forum.utils.rbac.registry import get_registry
        registry = get_registry()

    path = request.path

    if registry.is_public_route(path):
        return AuthResult(authorized=True, public=True)

    token = extract_token(request, registry.cookie_name)
    if not token:
        return AuthResult(authorized=False, reason=REASON_AUTH_REQUIRED)

    method = 'cookie' if request.cookies.get(registry.cookie_name) else 'bearer'

    try:
        claims = decode_access_token(token, secret=secret, algorithms=algorithms)
    except TokenError as e:
        logger.warning(f"Token verification failed for {path}: {e}")
        log_authentication_event('unknown', 'token_verify', False, method, str(e))
        return AuthResult(authorized=False, reason=REASON_INVALID_TOKEN)

    identity = identity_from_claims(claims)
    if identity is None:
        log_authentication_event('unknown', 'token_verify', False, method, 'token carries no user id')
        return AuthResult(authorized=False, reason=REASON_INVALID_TOKEN)

    log_authentication_event(identity.username or identity.id, 'token_verify', True, method)
    return AuthResult(authorized=True, user=identity)
