"""Shared-secret gate for decision requests."""
from __future__ import annotations

import hmac
import logging
from datetime import datetime, timezone
from typing import Optional

from core.errors import AuthError

AUTH_HEADER = "X-Bridge-Key"


def check_credential(presented: Optional[str], expected: str, origin: Optional[str] = None) -> bool:
    """Return True when ``presented`` matches the configured secret.

    An unset secret rejects everything. Rejections are logged with a UTC
    timestamp and the caller's origin.
    """
    if expected and presented is not None:
        if hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
            return True

    logging.warning(
        "Rejected unauthorized decision request at %s from %s (credential %s)",
        datetime.now(timezone.utc).isoformat(),
        origin or "unknown",
        "missing" if not presented else "mismatch",
    )
    return False


def require_credential(presented: Optional[str], expected: str, origin: Optional[str] = None) -> None:
    """Raise AuthError unless ``presented`` matches the configured secret."""
    if not check_credential(presented, expected, origin):
        raise AuthError(
            "Unauthorized",
            context={"origin": origin or "unknown", "credential": "missing" if not presented else "mismatch"},
        )
