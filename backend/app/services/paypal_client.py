"""
EngageSphere Backend - PayPal Gateway Client
=============================================

What:  PaymentGateway implementation for the PayPal REST API (Orders v2).
How:   httpx.AsyncClient per operation; OAuth2 client-credentials token
       fetched fresh before every order call.
Who:   Used by PaymentService through the module-level `paypal_client`.

Protocol:
    POST /v1/oauth2/token                     Basic auth → bearer token
    POST /v2/checkout/orders                  Bearer → order id + approve link
    POST /v2/checkout/orders/{id}/capture     Bearer → payer + capture transaction

Error Handling Chain:
    400/401 on token exchange           → AuthError
    422 on capture (order not approved) → ValidationError (provider payload in details)
    any other non-2xx                   → GatewayError
    transport failure / timeout         → GatewayError

    Order creation and capture are not idempotent and are attempted exactly
    once. The token exchange may be retried on transport errors when
    GATEWAY_TOKEN_ATTEMPTS > 1.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import Settings, settings
from app.exceptions import AuthError, GatewayError, ValidationError
from app.services.gateway_base import CaptureResult, PaymentGateway, RemoteOrder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayConfig:
    """Immutable gateway configuration injected into PayPalClient."""

    client_id: str
    client_secret: str
    api_base: str
    timeout_seconds: float = 15.0
    token_attempts: int = 1
    brand_name: str = "EngageSphere"

    @classmethod
    def from_settings(cls, source: Settings) -> "GatewayConfig":
        return cls(
            client_id=source.paypal_client_id,
            client_secret=source.paypal_client_secret,
            api_base=source.gateway_api_base,
            timeout_seconds=source.gateway_timeout_seconds,
            token_attempts=source.gateway_token_attempts,
            brand_name=source.brand_name,
        )


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse PayPal's RFC 3339 timestamps ("2024-01-15T12:00:00Z")."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable gateway timestamp: %s", value)
        return None


def _success_body(response: httpx.Response) -> Dict[str, Any]:
    """Decoded JSON object of a 2xx response; anything else is a GatewayError."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        raise GatewayError(
            message="Payment gateway returned an unreadable response",
            status_code=response.status_code,
        )
    return body


def _error_body(response: httpx.Response) -> Dict[str, Any]:
    """Gateway error payload as a dict, whatever shape the body has."""
    try:
        body = response.json()
    except ValueError:
        return {"raw": response.text}
    if isinstance(body, dict):
        return body
    return {"body": body}


class PayPalClient(PaymentGateway):
    """
    PayPal Orders v2 client.

    Stateless apart from its configuration: no token cache, no shared
    connection pool. Pass `transport` to route requests somewhere other
    than the network (tests use httpx.MockTransport).
    """

    TOKEN_PATH = "/v1/oauth2/token"
    ORDERS_PATH = "/v2/checkout/orders"

    def __init__(
        self,
        config: GatewayConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport
        logger.info(
            "PayPalClient initialized with api_base=%s, timeout=%.1fs",
            config.api_base,
            config.timeout_seconds,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.api_base,
            timeout=self.config.timeout_seconds,
            transport=self._transport,
        )

    async def fetch_access_token(self) -> str:
        """
        OAuth2 client-credentials grant with HTTP Basic auth.

        Returns:
            The bearer access token.

        Raises:
            AuthError: Credentials rejected (400/401) or no token in the response.
            GatewayError: Other non-2xx status or transport failure.
        """
        start_time = time.time()
        try:
            async with self._client() as client:
                async for attempt in AsyncRetrying(
                    retry=retry_if_exception_type(httpx.TransportError),
                    stop=stop_after_attempt(self.config.token_attempts),
                    wait=wait_exponential_jitter(initial=1, max=5),
                    before_sleep=before_sleep_log(logger, logging.WARNING),
                    reraise=True,
                ):
                    with attempt:
                        response = await client.post(
                            self.TOKEN_PATH,
                            data={"grant_type": "client_credentials"},
                            auth=(self.config.client_id, self.config.client_secret),
                            headers={"Accept": "application/json"},
                        )
        except httpx.HTTPError as e:
            logger.error("PayPal token request failed: %s", str(e))
            raise GatewayError(
                message="Could not reach the payment gateway",
                context={"operation": "fetch_access_token", "error_type": type(e).__name__},
            )

        duration_ms = (time.time() - start_time) * 1000
        if response.status_code in (400, 401):
            logger.error(
                "PayPal rejected client credentials (%d) after %.0fms",
                response.status_code,
                duration_ms,
            )
            raise AuthError(status_code=response.status_code, details=_error_body(response))
        if response.is_error:
            raise GatewayError(
                message="Payment gateway token request failed",
                status_code=response.status_code,
                details=_error_body(response),
            )

        token = _success_body(response).get("access_token")
        if not token:
            raise AuthError(message="Payment gateway returned no access token")
        logger.debug("PayPal access token obtained in %.0fms", duration_ms)
        return token

    async def _post(self, path: str, token: str, payload: Dict[str, Any], operation: str) -> httpx.Response:
        """Bearer-authorized JSON POST. Transport failures become GatewayError."""
        start_time = time.time()
        try:
            async with self._client() as client:
                response = await client.post(
                    path,
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            logger.error("PayPal %s failed after %.0fms: %s", operation, (time.time() - start_time) * 1000, str(e))
            raise GatewayError(
                message="Could not reach the payment gateway",
                context={"operation": operation, "error_type": type(e).__name__},
            )

        logger.info(
            "PayPal %s returned %d in %.0fms",
            operation,
            response.status_code,
            (time.time() - start_time) * 1000,
        )
        return response

    async def create_remote_order(
        self,
        amount: Decimal,
        description: str,
        return_url: str,
        cancel_url: str,
        currency: str = "USD",
        custom_id: Optional[str] = None,
    ) -> RemoteOrder:
        token = await self.fetch_access_token()

        purchase_unit: Dict[str, Any] = {
            "amount": {"currency_code": currency.upper(), "value": f"{Decimal(amount):.2f}"},
            "description": description,
        }
        if custom_id:
            purchase_unit["custom_id"] = custom_id

        payload = {
            "intent": "CAPTURE",
            "purchase_units": [purchase_unit],
            "application_context": {
                "brand_name": self.config.brand_name,
                "user_action": "PAY_NOW",
                "return_url": return_url,
                "cancel_url": cancel_url,
            },
        }

        response = await self._post(self.ORDERS_PATH, token, payload, "create_order")
        if response.is_error:
            raise GatewayError(
                message="Order creation failed",
                status_code=response.status_code,
                details=_error_body(response),
            )

        order = _success_body(response)
        order_id = order.get("id")
        if not order_id:
            raise GatewayError(message="Payment gateway returned an order without an id")

        links = order.get("links") or []
        approve_link = next(
            (
                link.get("href") or ""
                for link in links
                if isinstance(link, dict) and link.get("rel") == "approve"
            ),
            "",
        )
        return RemoteOrder(
            order_id=order_id,
            status=order.get("status", ""),
            approve_link=approve_link,
        )

    async def capture_remote_order(self, order_id: str) -> CaptureResult:
        token = await self.fetch_access_token()

        path = f"{self.ORDERS_PATH}/{quote(order_id, safe='')}/capture"
        response = await self._post(path, token, {}, "capture_order")

        if response.status_code == 422:
            details = _error_body(response)
            logger.warning("PayPal capture validation error for order %s: %s", order_id, details)
            raise ValidationError(
                message="Order cannot be captured. Ensure it is approved by the buyer.",
                details=details,
                context={"order_id": order_id},
            )
        if response.is_error:
            raise GatewayError(
                message="Payment capture failed",
                status_code=response.status_code,
                details=_error_body(response),
                context={"order_id": order_id},
            )

        body = _success_body(response)
        try:
            capture = body["purchase_units"][0]["payments"]["captures"][0]
        except (KeyError, IndexError, TypeError):
            raise GatewayError(
                message="Payment gateway returned a capture without transaction data",
                context={"order_id": order_id},
            )

        payer = body.get("payer") or {}
        name = payer.get("name") or {}
        payer_name = f"{name.get('given_name', '')} {name.get('surname', '')}".strip()

        return CaptureResult(
            order_id=body.get("id") or order_id,
            transaction_id=capture.get("id", ""),
            status=capture.get("status", ""),
            create_time=_parse_timestamp(capture.get("create_time")),
            payer_email=payer.get("email_address", ""),
            payer_name=payer_name,
        )

    async def health_check(self) -> bool:
        """Reachable and authenticated iff a token can be fetched."""
        try:
            await self.fetch_access_token()
            return True
        except GatewayError as e:
            logger.warning("PayPal health check failed: %s", e.message)
            return False


# ── Singleton Instance ────────────────────────────────────────────────────
paypal_client = PayPalClient(GatewayConfig.from_settings(settings))
