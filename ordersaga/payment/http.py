"""
HTTP payment gateway client.

Talks JSON to a processor exposing:

    POST /payments                          process_payment
    POST /authorizations                    authorize
    POST /authorizations/{id}/capture       capture
    POST /authorizations/{id}/void          void_authorization
    POST /payments/{id}/refunds             refund
    GET  /payments/{id}                     get_payment_status

Idempotency keys travel in the ``Idempotency-Key`` header. Amounts are sent
as decimal strings.

A 2xx or 4xx response carrying a ``status`` field is a business outcome and
is returned as a result object. Timeouts, connection errors, 5xx responses
and unparseable bodies raise ``ExternalServiceError``.

Usage:
    >>> async with HttpPaymentGatewayClient("https://pay.example.com", api_key="sk") as gw:
    ...     payment = await gw.process_payment(1, Decimal("10.00"), "USD", "card", "key-1")
"""

from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from ordersaga.core.exceptions import ExternalServiceError
from ordersaga.core.logger import get_logger
from ordersaga.core.models import to_money
from ordersaga.core.types import (
    AuthorizationStatus,
    CaptureStatus,
    PaymentStatus,
    VoidStatus,
)
from ordersaga.payment.base import PaymentGatewayClient
from ordersaga.payment.types import (
    Authorization,
    Capture,
    Payment,
    PaymentStatusResult,
    Refund,
    VoidResult,
)

logger = get_logger(__name__)


class HttpPaymentGatewayClient(PaymentGatewayClient):
    """Payment gateway client backed by ``httpx.AsyncClient``."""

    provider = "HttpPaymentGateway"

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Args:
            base_url: Root URL of the processor API
            api_key: Sent as a bearer token when given
            timeout: Per-request timeout in seconds
            client: Pre-built client (tests pass one with ``httpx.MockTransport``)
        """
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=headers,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        try:
            response = await self._client.request(method, path, json=json, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"Payment gateway timed out on {method} {path}: {e}")
            raise ExternalServiceError(self.provider, f"timeout: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"Payment gateway unreachable on {method} {path}: {e}")
            raise ExternalServiceError(self.provider, str(e) or type(e).__name__) from e

        if response.status_code >= 500:
            msg = f"HTTP {response.status_code} from {method} {path}"
            logger.error(f"Payment gateway error: {msg}")
            raise ExternalServiceError(self.provider, msg)

        try:
            body = response.json()
        except ValueError as e:
            msg = f"invalid JSON in HTTP {response.status_code} response"
            raise ExternalServiceError(self.provider, msg) from e

        if not isinstance(body, dict) or "status" not in body:
            msg = f"HTTP {response.status_code} response without a status field"
            raise ExternalServiceError(self.provider, msg)
        return body

    def _decode(self, body: dict[str, Any], key: str, enum_type=None, default: Any = None) -> Any:
        value = body.get(key, default)
        if value is None:
            if default is None and key in ("id", "status"):
                msg = f"response missing {key!r}"
                raise ExternalServiceError(self.provider, msg)
            return default
        if enum_type is not None:
            try:
                return enum_type(str(value).upper())
            except ValueError as e:
                msg = f"unexpected {key} {value!r}"
                raise ExternalServiceError(self.provider, msg) from e
        return value

    def _result_id(self, body: dict[str, Any], approved: bool) -> str | None:
        """Id of a result. Required on approval; a decline may come without one."""
        if approved:
            return self._decode(body, "id")
        value = body.get("id")
        return None if value is None else str(value)

    def _amount(self, body: dict[str, Any], fallback: Decimal) -> Decimal:
        try:
            return to_money(body.get("amount", fallback))
        except (InvalidOperation, TypeError, ValueError) as e:
            msg = f"unparseable amount {body.get('amount')!r}"
            raise ExternalServiceError(self.provider, msg) from e

    async def process_payment(
        self,
        order_id: int,
        amount: Decimal,
        currency: str,
        method: str,
        idempotency_key: str | None = None,
    ) -> Payment:
        logger.info(f"Calling payment gateway for order: {order_id}")
        body = await self._request(
            "POST",
            "/payments",
            json={
                "order_id": order_id,
                "amount": str(amount),
                "currency": currency,
                "payment_method": method,
            },
            idempotency_key=idempotency_key,
        )
        status = self._decode(body, "status", PaymentStatus)
        return Payment(
            id=self._result_id(body, status == PaymentStatus.SUCCESS),
            status=status,
            amount=self._amount(body, amount),
            currency=body.get("currency", currency),
            method=body.get("payment_method", method),
            transaction_id=body.get("transaction_id"),
            message=body.get("message", ""),
        )

    async def authorize(
        self,
        order_id: int,
        amount: Decimal,
        currency: str,
        idempotency_key: str,
    ) -> Authorization:
        logger.info(f"Authorizing payment for order: {order_id}")
        body = await self._request(
            "POST",
            "/authorizations",
            json={"order_id": order_id, "amount": str(amount), "currency": currency},
            idempotency_key=idempotency_key,
        )
        status = self._decode(body, "status", AuthorizationStatus)
        return Authorization(
            id=self._result_id(body, status == AuthorizationStatus.AUTHORIZED),
            status=status,
            amount=self._amount(body, amount),
            currency=body.get("currency", currency),
            message=body.get("message", ""),
        )

    async def capture(
        self,
        authorization_id: str,
        amount: Decimal,
        idempotency_key: str,
    ) -> Capture:
        logger.info(f"Capturing payment for authorization: {authorization_id}")
        body = await self._request(
            "POST",
            f"/authorizations/{authorization_id}/capture",
            json={"amount": str(amount)},
            idempotency_key=idempotency_key,
        )
        status = self._decode(body, "status", CaptureStatus)
        return Capture(
            id=self._result_id(body, status == CaptureStatus.CAPTURED),
            authorization_id=authorization_id,
            status=status,
            amount=self._amount(body, amount),
            currency=body.get("currency", "USD"),
            message=body.get("message", ""),
        )

    async def void_authorization(
        self,
        authorization_id: str,
        idempotency_key: str,
    ) -> VoidResult:
        logger.info(f"Voiding authorization: {authorization_id}")
        body = await self._request(
            "POST",
            f"/authorizations/{authorization_id}/void",
            idempotency_key=idempotency_key,
        )
        return VoidResult(
            authorization_id=authorization_id,
            status=self._decode(body, "status", VoidStatus),
            message=body.get("message", ""),
        )

    async def refund(
        self,
        payment_id: str,
        amount: Decimal,
        reason: str | None,
        idempotency_key: str,
    ) -> Refund:
        logger.info(f"Processing refund for payment: {payment_id}")
        body = await self._request(
            "POST",
            f"/payments/{payment_id}/refunds",
            json={"amount": str(amount), "reason": reason},
            idempotency_key=idempotency_key,
        )
        status = self._decode(body, "status", PaymentStatus)
        return Refund(
            id=self._result_id(body, status == PaymentStatus.SUCCESS),
            payment_id=payment_id,
            status=status,
            amount=self._amount(body, amount),
            currency=body.get("currency", "USD"),
            message=body.get("message", ""),
        )

    async def get_payment_status(self, payment_id: str) -> PaymentStatusResult:
        body = await self._request("GET", f"/payments/{payment_id}")
        return PaymentStatusResult(
            payment_id=payment_id,
            status=str(body["status"]).upper(),
            message=body.get("message", ""),
        )
