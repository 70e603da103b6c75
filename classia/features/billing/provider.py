"""
Billing provider protocol.

Defines the interface for payment processors (Asaas, etc.).
This allows swapping processors without changing business logic.
"""
from typing import Protocol, Optional
from dataclasses import dataclass
from datetime import date
from decimal import Decimal


@dataclass(frozen=True)
class RemoteCustomer:
    """Customer record created at the payment processor."""
    id: str


@dataclass(frozen=True)
class PaymentIntent:
    """Payment created at the payment processor."""
    id: str
    status: str
    invoice_url: Optional[str]
    qr_code: Optional[str] = None


class BillingProvider(Protocol):
    """
    Protocol for payment processors.

    Implementations must handle:
    - Customer creation
    - One-off payment creation (PIX)

    Every failure, remote or transport, is raised as GatewayError and is
    never retried here.
    """

    def create_customer(self, name: str, email: str, external_reference: str) -> RemoteCustomer:
        """
        Create a customer at the processor.

        Args:
            name: Account holder name
            email: Account holder email
            external_reference: Internal account id

        Returns:
            RemoteCustomer with the processor customer id

        Raises:
            GatewayError: If customer creation fails
        """
        ...

    def create_payment(
        self,
        customer_id: str,
        value: Decimal,
        description: str,
        due_date: date,
        external_reference: str,
    ) -> PaymentIntent:
        """
        Create a PIX payment for a customer.

        Args:
            customer_id: Processor customer id
            value: Amount in BRL
            description: Human readable charge description
            due_date: Payment due date
            external_reference: Opaque reference echoed back in notifications

        Returns:
            PaymentIntent with payment id, status and payment URL

        Raises:
            GatewayError: If payment creation fails
        """
        ...
