"""
EngageSphere Backend - Abstract Payment Gateway Interface
==========================================================

What:  Abstract base class defining the contract for payment gateway clients.
How:   Concrete implementations inherit from PaymentGateway and implement
       the token, order-create and order-capture calls.
Who:   Called by PaymentService during order creation and capture.

The service only depends on this interface, so tests substitute an
AsyncMock and a second provider could be added without touching the
orchestration code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class RemoteOrder:
    """Result of a successful order creation at the gateway."""

    order_id: str
    status: str
    approve_link: str


@dataclass(frozen=True)
class CaptureResult:
    """Result of a successful capture: payer identity and the first capture transaction."""

    order_id: str
    transaction_id: str
    status: str
    create_time: Optional[datetime]
    payer_email: str
    payer_name: str


class PaymentGateway(ABC):
    """
    Abstract interface for an OAuth2-authenticated order/capture gateway.

    Contract:
        - Every order operation obtains a fresh bearer token (no caching)
        - Rejected credentials raise AuthError
        - Unprocessable capture (order not approved) raises ValidationError
        - Any other non-success response raises GatewayError
    """

    @abstractmethod
    async def fetch_access_token(self) -> str:
        """
        Exchange client credentials for a short-lived bearer token.

        Raises:
            AuthError: The gateway rejected the client id/secret.
            GatewayError: Any other failure.
        """
        ...

    @abstractmethod
    async def create_remote_order(
        self,
        amount: Decimal,
        description: str,
        return_url: str,
        cancel_url: str,
        currency: str = "USD",
        custom_id: Optional[str] = None,
    ) -> RemoteOrder:
        """
        Create a capture-intent order and return its id and approval link.

        Raises:
            GatewayError: Non-2xx response or transport failure.
        """
        ...

    @abstractmethod
    async def capture_remote_order(self, order_id: str) -> CaptureResult:
        """
        Capture a previously approved order.

        Raises:
            ValidationError: The gateway reports the order is not capturable
                (typically not yet approved by the payer). `details` carries
                the provider payload.
            GatewayError: Any other failure.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """True if the gateway is reachable and accepts our credentials."""
        ...
