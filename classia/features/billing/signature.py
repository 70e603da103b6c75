"""
Webhook sender verification.

Payment notifications are accepted only from a verified sender. Two schemes:
- token: Asaas sends the configured shared token in `asaas-access-token`
- hmac:  hex HMAC-SHA256 of the raw body in `x-webhook-signature`
"""
import hashlib
import hmac
from typing import Optional, Protocol

from classia.core.config import settings


TOKEN_HEADER = "asaas-access-token"
SIGNATURE_HEADER = "x-webhook-signature"


class WebhookVerifier(Protocol):
    header_name: str

    def verify(self, raw_body: bytes, signature_header: Optional[str]) -> bool:
        ...


class AccessTokenVerifier:
    header_name = TOKEN_HEADER

    def __init__(self, token: Optional[str]):
        self.token = token

    def verify(self, raw_body: bytes, signature_header: Optional[str]) -> bool:
        if not self.token or not signature_header:
            return False
        return hmac.compare_digest(signature_header.strip().encode(), self.token.encode())


class HmacSignatureVerifier:
    header_name = SIGNATURE_HEADER

    def __init__(self, secret: Optional[str]):
        self.secret = secret

    def sign(self, raw_body: bytes) -> str:
        return hmac.new(self.secret.encode(), raw_body, hashlib.sha256).hexdigest()

    def verify(self, raw_body: bytes, signature_header: Optional[str]) -> bool:
        if not self.secret or not signature_header:
            return False
        provided = signature_header.strip().lower()
        if provided.startswith("sha256="):
            provided = provided[len("sha256="):]
        return hmac.compare_digest(provided.encode(), self.sign(raw_body).encode())


def get_verifier() -> WebhookVerifier:
    """Verifier for the configured WEBHOOK_AUTH_MODE."""
    mode = (settings.WEBHOOK_AUTH_MODE or "token").lower()
    if mode == "hmac":
        return HmacSignatureVerifier(settings.WEBHOOK_HMAC_SECRET)
    return AccessTokenVerifier(settings.ASAAS_WEBHOOK_TOKEN)
