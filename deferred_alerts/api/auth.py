"""
API authentication using X-API-KEY header.

Every route except ``/health`` depends on ``verify_api_key``. With no keys
configured (``API_KEYS`` empty) the service runs in dev mode and accepts
all requests.
"""

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from deferred_alerts.config.settings import get_settings

api_key_header = APIKeyHeader(name="X-API-KEY", auto_error=False)


def _configured_keys() -> frozenset[str]:
    raw = get_settings().api_keys
    return frozenset(k.strip() for k in raw.split(",") if k.strip())


async def verify_api_key(api_key: str | None = Security(api_key_header)) -> str:
    """
    Verify API key from X-API-KEY header.

    Returns:
        The validated API key, or "dev-mode" when no keys are configured

    Raises:
        HTTPException: 401 if the key is missing or unknown
    """
    keys = _configured_keys()
    if not keys:
        return "dev-mode"

    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-KEY header.",
        )
    if api_key not in keys:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
    return api_key
