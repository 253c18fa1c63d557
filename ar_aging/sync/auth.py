"""Caller identity resolution against the external identity provider."""

from typing import Optional

import requests

from ar_aging.config import Settings
from ar_aging.errors import AuthenticationError, ConfigurationError
from ar_aging.logging_config import get_logger

logger = get_logger(__name__)

USER_PATH = "/auth/v1/user"


def resolve_caller(
    authorization: Optional[str],
    settings: Settings,
    session: Optional[requests.Session] = None,
) -> str:
    """Turn a bearer Authorization header into an attribution string.

    The identity provider's user endpoint is asked who the token belongs to.
    The display name is preferred over the email address.

    Args:
        authorization (str): Raw Authorization header value.
        settings (Settings): Provides IDENTITY_URL and IDENTITY_API_KEY.
        session (requests.Session, optional): HTTP session to use.

    Returns:
        str: Caller identity.

    Raises:
        AuthenticationError: If the header is missing or the token is rejected.
        ConfigurationError: If the identity provider is not configured.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Unauthorized - No auth header")
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise AuthenticationError("Unauthorized - Empty bearer token")
    if not settings.identity_url or not settings.identity_api_key:
        raise ConfigurationError("IDENTITY_URL and IDENTITY_API_KEY must be set")

    http = session or requests
    try:
        response = http.get(
            settings.identity_url.rstrip("/") + USER_PATH,
            headers={"Authorization": f"Bearer {token}", "apikey": settings.identity_api_key},
            timeout=settings.http_timeout,
        )
    except requests.exceptions.RequestException as e:
        logger.warning(f"Identity provider unreachable: {e}")
        raise AuthenticationError("Unauthorized - Identity provider unreachable") from e

    if response.status_code != 200:
        raise AuthenticationError("Unauthorized - Invalid session")
    try:
        user = response.json() or {}
    except ValueError as e:
        raise AuthenticationError("Unauthorized - Invalid identity response") from e

    metadata = user.get("user_metadata") or {}
    identity = metadata.get("full_name") or metadata.get("name") or user.get("email")
    if not identity:
        raise AuthenticationError("Unauthorized - Identity has no name or email")
    return identity
