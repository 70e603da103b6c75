"""
Admin authentication for quota and usage operations.

Admins authenticate with the shared X-Admin-Key header (ADMIN_KEY setting).
The key itself is never logged; actors are identified by a short hash.
"""
import hashlib
import hmac
from dataclasses import dataclass
from fastapi import Request
from classia.core.errors import PermissionError
from classia.core.config import settings


@dataclass
class AdminActor:
    """Represents an authenticated admin actor."""
    actor_id: str  # "admin:<hash>"
    auth_mechanism: str = "x_admin_key"


def require_admin(request: Request) -> AdminActor:
    """
    FastAPI dependency: Require admin authentication.

    Raises PermissionError (403) when the key is unconfigured, missing or wrong.
    """
    expected_key = settings.ADMIN_KEY
    if not expected_key:
        raise PermissionError("Admin authentication not configured", code="admin_auth_unconfigured")

    header_key = request.headers.get("X-Admin-Key", "").strip()
    if not header_key or not hmac.compare_digest(header_key, expected_key):
        raise PermissionError("Invalid or missing admin credentials", code="admin_unauthorized")

    key_hash = hashlib.sha256(header_key.encode()).hexdigest()[:16]
    return AdminActor(actor_id=f"admin:{key_hash}")
