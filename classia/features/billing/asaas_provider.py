"""
Asaas billing provider implementation.

Implements BillingProvider protocol over the Asaas REST API with httpx.
Calls are bounded by PAYMENT_TIMEOUT_SECONDS and never retried.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from classia.core.config import settings
from classia.core.errors import GatewayError
from classia.features.billing.provider import PaymentIntent, RemoteCustomer


logger = logging.getLogger(__name__)


class AsaasProvider:
    """Asaas implementation of BillingProvider protocol."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize Asaas provider.

        Args:
            api_key: Asaas API key (defaults to ASAAS_API_KEY setting)
            base_url: API root (defaults to ASAAS_API_URL setting)
            timeout: Request timeout in seconds (defaults to PAYMENT_TIMEOUT_SECONDS)
            client: Preconfigured httpx.Client, mainly for tests
        """
        self.api_key = api_key or settings.ASAAS_API_KEY
        self.base_url = (base_url or settings.ASAAS_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.PAYMENT_TIMEOUT_SECONDS
        self._client = client

        if not self.api_key:
            raise GatewayError("ASAAS_API_KEY not configured")

    def _post(self, path: str, payload: Dict[str, Any], operation: str) -> Dict[str, Any]:
        headers = {
            "access_token": self.api_key,
            "Content-Type": "application/json",
        }
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = self._client.post(url, json=payload, headers=headers, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.error(
                "[billing] asaas request failed",
                extra={"operation": operation, "error": type(exc).__name__},
            )
            raise GatewayError(f"Asaas {operation} failed: {exc}") from exc

        if not response.is_success:
            logger.error(
                "[billing] asaas rejected request",
                extra={"operation": operation, "status": response.status_code, "body": response.text[:500]},
            )
            raise GatewayError(
                f"Asaas {operation} failed with status {response.status_code}",
                details={"upstream_status": response.status_code},
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise GatewayError(f"Asaas {operation} returned invalid JSON") from exc
        if not isinstance(data, dict) or not data.get("id"):
            raise GatewayError(f"Asaas {operation} response has no id")
        return data

    def create_customer(self, name: str, email: str, external_reference: str) -> RemoteCustomer:
        """Create Asaas customer for an account."""
        # CPF/CNPJ is not collected at signup, so it is not sent
        data = self._post(
            "/customers",
            {"name": name, "email": email, "externalReference": external_reference},
            "customer creation",
        )
        return RemoteCustomer(id=data["id"])

    def create_payment(
        self,
        customer_id: str,
        value: Decimal,
        description: str,
        due_date: date,
        external_reference: str,
    ) -> PaymentIntent:
        """Create Asaas PIX payment."""
        data = self._post(
            "/payments",
            {
                "customer": customer_id,
                "billingType": "PIX",
                "dueDate": due_date.isoformat(),
                "value": float(value),
                "description": description,
                "externalReference": external_reference,
            },
            "payment creation",
        )
        return PaymentIntent(
            id=data["id"],
            status=str(data.get("status") or "PENDING"),
            invoice_url=data.get("invoiceUrl"),
            qr_code=data.get("qrCode"),
        )
