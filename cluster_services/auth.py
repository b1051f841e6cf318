"""API-key authentication for the HTTP shim.

Fail-safe by default: a valid key is required unless dev mode is
explicitly enabled with ``DEV_MODE=true`` or ``DISABLE_AUTH=true``.
"""

import logging
import os
from typing import List, Mapping, Optional

logger = logging.getLogger(__name__)


def get_api_keys() -> List[str]:
    """Return the configured keys from the comma-separated ``API_KEYS``."""
    return [key.strip() for key in os.getenv("API_KEYS", "").split(",") if key.strip()]


def is_dev_mode() -> bool:
    return (
        os.getenv("DEV_MODE", "").lower() == "true"
        or os.getenv("DISABLE_AUTH", "").lower() == "true"
    )


def extract_api_key(headers: Mapping[str, str]) -> Optional[str]:
    """Read a key from ``Authorization: Bearer <key>`` or ``X-API-Key``."""
    auth_header = headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[len("Bearer "):].strip()
        if token:
            return token
    x_api_key = headers.get("x-api-key", "").strip()
    return x_api_key or None


def validate_api_key(api_key: Optional[str]) -> bool:
    valid_keys = get_api_keys()

    if is_dev_mode():
        if not valid_keys:
            logger.warning(
                "DEV_MODE enabled and no API_KEYS configured. Allowing all requests."
            )
        if not api_key:
            return True
        return not valid_keys or api_key in valid_keys

    if not api_key:
        return False

    if not valid_keys:
        logger.error("No API_KEYS configured. Rejecting all requests (fail-safe).")
        return False

    return api_key in valid_keys
