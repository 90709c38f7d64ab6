import logging
from typing import Optional

import jwt
from jwt import PyJWKClient

import config
from core.errors import UnauthorizedError

logger = logging.getLogger(__name__)

_jwks_client: Optional[PyJWKClient] = None


def get_jwks_client() -> PyJWKClient:
    """Lazily build the JWKS client; keys are cached by PyJWKClient itself."""
    global _jwks_client
    if _jwks_client is None:
        _jwks_client = PyJWKClient(config.DESCOPE_JWKS_URL, cache_keys=True)
        logger.info(f"JWKS client initialized with JWT leeway: {config.DESCOPE_JWT_LEEWAY}s")
    return _jwks_client


def _decode(token: str, leeway: int) -> dict:
    signing_key = get_jwks_client().get_signing_key_from_jwt(token)
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["RS256"],
        leeway=leeway,
        options={"verify_aud": False},
    )


def validate_descope_jwt(token: str) -> dict:
    """
    Validate a Descope session JWT and return the user info in it.

    In case of clock skew between the device and the server, retry once with
    the fallback leeway before rejecting the token.

    Raises:
        UnauthorizedError: if the token is invalid or has no subject
    """
    try:
        try:
            claims = _decode(token, config.DESCOPE_JWT_LEEWAY)
        except jwt.ImmatureSignatureError:
            logger.info(
                f"Retrying JWT validation with fallback leeway: {config.DESCOPE_JWT_LEEWAY_FALLBACK}s"
            )
            claims = _decode(token, config.DESCOPE_JWT_LEEWAY_FALLBACK)
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Session expired")
    except (jwt.PyJWTError, jwt.PyJWKClientError) as e:
        logger.warning(f"Descope JWT validation failed: {e}")
        raise UnauthorizedError("Invalid token")

    user_id = claims.get("sub")
    if not user_id:
        logger.error("Descope JWT validation failed: missing sub claim")
        raise UnauthorizedError("Invalid token: missing user ID")

    return {"userId": user_id, "claims": claims}
