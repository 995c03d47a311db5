"""Request identity for FastAPI.

Two credentials are accepted:
- ``Authorization: Bearer <jwt>``: a session token issued by the identity
  provider, verified against its JWKS
- ``X-API-Key: dp_...``: a key from the api_keys projection
"""

from dataclasses import dataclass, field
from functools import lru_cache

import jwt as pyjwt
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from datapod.core.config import get_settings
from datapod.core.exceptions import UnauthorizedError

_bearer_scheme = HTTPBearer(auto_error=False)
_api_key_scheme = APIKeyHeader(name="X-API-Key", auto_error=False)


@lru_cache
def get_jwks_client() -> PyJWKClient:
    """Create a cached JWKS client for the identity provider."""
    settings = get_settings()
    if not settings.identity_jwks_url:
        raise UnauthorizedError("Token authentication is not configured")
    return PyJWKClient(settings.identity_jwks_url, cache_keys=True, lifespan=300)


@dataclass(frozen=True)
class SessionIdentity:
    """The acting user of a request."""

    authenticated: bool
    user_id: str | None
    claims: dict = field(default_factory=dict)
    method: str = "jwt"


def decode_session_jwt(token: str) -> SessionIdentity:
    """Verify and decode a session JWT.

    Raises ``UnauthorizedError`` on any validation failure.
    """
    try:
        signing_key = get_jwks_client().get_signing_key_from_jwt(token)
        payload = pyjwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            options={
                "verify_aud": False,
                "require": ["sub", "exp", "nbf", "iat"],
            },
        )
    except pyjwt.ExpiredSignatureError as exc:
        raise UnauthorizedError("Token expired") from exc
    except pyjwt.ImmatureSignatureError as exc:
        raise UnauthorizedError("Token not yet valid") from exc
    except pyjwt.MissingRequiredClaimError as exc:
        raise UnauthorizedError(f"Missing required claim: {exc.claim}") from exc
    except pyjwt.PyJWKClientError as exc:
        raise UnauthorizedError("Signing key could not be resolved") from exc
    except pyjwt.InvalidTokenError as exc:
        raise UnauthorizedError(f"Invalid token: {exc}") from exc

    sub = payload.get("sub")
    if not sub:
        raise UnauthorizedError("Token missing sub claim")

    return SessionIdentity(authenticated=True, user_id=sub, claims=payload, method="jwt")


def validate_session_claims(identity: SessionIdentity) -> None:
    """Check issuer and (when configured) audience against settings."""
    settings = get_settings()
    if settings.identity_issuer and identity.claims.get("iss") != settings.identity_issuer:
        raise UnauthorizedError("Invalid issuer (iss mismatch)")
    if settings.identity_audiences:
        _validate_audience_claim(identity.claims.get("aud"), settings.identity_audiences)


def _validate_audience_claim(aud_claim: object, allowed_audiences: list[str]) -> None:
    """Validate aud claim against configured allowed audiences."""
    if aud_claim is None:
        raise UnauthorizedError("Missing aud claim")

    if isinstance(aud_claim, str):
        audiences = {aud_claim}
    elif isinstance(aud_claim, list) and all(isinstance(v, str) for v in aud_claim):
        audiences = set(aud_claim)
    else:
        raise UnauthorizedError("Invalid aud claim format")

    if not audiences.intersection(allowed_audiences):
        raise UnauthorizedError("Unauthorized audience (aud mismatch)")


async def identity_from_api_key(request: Request, api_key: str) -> SessionIdentity:
    container = request.app.state.container
    key = await container.api_keys.verify(api_key)
    if key is None:
        raise UnauthorizedError("Invalid or expired API key")
    return SessionIdentity(
        authenticated=True,
        user_id=key.user_id,
        claims={"scope": key.scope, "key_id": key.id},
        method="api_key",
    )


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    api_key: str | None = Depends(_api_key_scheme),
) -> SessionIdentity:
    """FastAPI dependency resolving the acting user.

    Usage::

        @router.get("/protected")
        async def protected(identity: SessionIdentity = Depends(require_auth)):
            ...
    """
    if credentials is not None:
        identity = decode_session_jwt(credentials.credentials)
        validate_session_claims(identity)
    elif api_key:
        identity = await identity_from_api_key(request, api_key)
    else:
        raise UnauthorizedError("Missing authorization header")

    # For error handlers and audit logging
    request.state.user_id = identity.user_id
    return identity
