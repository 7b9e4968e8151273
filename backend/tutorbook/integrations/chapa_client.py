"""Chapa payment gateway integration.

Handles hosted-checkout initialisation, transaction verification and bank
transfers (used for dispute refunds) against the Chapa REST API.
"""

from decimal import Decimal
from typing import Any, Optional

import httpx

from tutorbook.core.exceptions import GatewayError, GatewayTransientError, PayoutUnavailableError
from tutorbook.core.logging import get_logger
from tutorbook.core.metrics import record_gateway_call
from tutorbook.services.interfaces.payment_gateway import (
    BankDetails,
    PayerInfo,
    PaymentGateway,
    VerificationResult,
)

logger = get_logger(__name__)

# Chapa answers transfer calls from accounts without payout rights with a
# routing error rather than a business error.
_PAYOUT_DISABLED_MARKERS = (
    "method is not supported for route v1/transfer",
    "not allowed to make transfers",
)


def _error_body(response: httpx.Response) -> dict[str, Any]:
    try:
        parsed = response.json()
    except ValueError:
        return {"raw": response.text[:500]}
    return parsed if isinstance(parsed, dict) else {"raw": response.text[:500]}


def _is_payout_disabled(response: httpx.Response, body: dict[str, Any]) -> bool:
    if response.status_code in (403, 405):
        return True
    message = str(body.get("message") or body.get("raw") or "").lower()
    return any(marker in message for marker in _PAYOUT_DISABLED_MARKERS)


class ChapaGateway(PaymentGateway):
    """HTTP client for the Chapa v1 API."""

    name = "chapa"

    def __init__(
        self,
        *,
        secret_key: str,
        base_url: str = "https://api.chapa.co/v1",
        currency: str = "ETB",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._secret_key = secret_key
        self._base_url = base_url.rstrip("/")
        self._currency = currency
        self._timeout = timeout
        self._transport = transport

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        json_body: Optional[dict[str, Any]] = None,
    ) -> tuple[httpx.Response, dict[str, Any]]:
        """Make an authenticated request; transport failures and 5xx become GatewayTransientError."""
        headers = {
            "Authorization": f"Bearer {self._secret_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, headers=headers, json=json_body)
        except httpx.TransportError as exc:
            record_gateway_call(operation, "transport_error")
            logger.error("chapa_unreachable", operation=operation, path=path, error=str(exc))
            raise GatewayTransientError(f"Payment gateway unreachable: {exc}") from exc

        if response.status_code >= 500:
            record_gateway_call(operation, "server_error")
            body = _error_body(response)
            logger.error("chapa_server_error", operation=operation, status_code=response.status_code, body=body)
            raise GatewayTransientError(
                "Payment gateway is temporarily unavailable",
                details={"status_code": response.status_code},
            )

        body = _error_body(response)
        record_gateway_call(operation, "ok" if response.status_code < 400 else "rejected")
        return response, body

    async def init_checkout(
        self,
        amount: Decimal,
        payer: PayerInfo,
        tx_ref: str,
        callback_url: str,
        return_url: str,
    ) -> str:
        response, body = await self._request(
            "init_checkout",
            "POST",
            "/transaction/initialize",
            json_body={
                "amount": str(amount),
                "currency": self._currency,
                "email": payer.email,
                "first_name": payer.first_name,
                "last_name": payer.last_name,
                "tx_ref": tx_ref,
                "callback_url": callback_url,
                "return_url": return_url,
            },
        )
        if response.status_code >= 400:
            logger.warning("chapa_checkout_rejected", tx_ref=tx_ref, body=body)
            raise GatewayError(
                f"Checkout rejected by gateway: {body.get('message', 'unknown error')}",
                details={"status_code": response.status_code},
            )
        checkout_url = (body.get("data") or {}).get("checkout_url")
        if not checkout_url:
            raise GatewayError("Gateway response did not include a checkout URL", details={"tx_ref": tx_ref})
        return checkout_url

    async def verify(self, tx_ref: str) -> VerificationResult:
        response, body = await self._request("verify", "GET", f"/transaction/verify/{tx_ref}")
        if response.status_code == 404:
            return VerificationResult(tx_ref=tx_ref, status="failed", raw=body)
        if response.status_code >= 400:
            raise GatewayError(
                f"Verification rejected by gateway: {body.get('message', 'unknown error')}",
                details={"status_code": response.status_code},
            )
        data = body.get("data") or {}
        gateway_status = str(data.get("status") or body.get("status") or "").lower()
        if gateway_status == "success":
            status = "completed"
        elif gateway_status in ("failed", "failure", "cancelled"):
            status = "failed"
        else:
            status = "pending"
        return VerificationResult(tx_ref=tx_ref, status=status, raw=body)

    async def refund(self, tx_ref: str, bank: BankDetails, amount: Decimal, reference: str) -> str:
        response, body = await self._request(
            "refund",
            "POST",
            "/transfer",
            json_body={
                "account_name": bank.account_name,
                "account_number": bank.account_number,
                "bank_code": bank.bank_code,
                "amount": str(amount),
                "currency": self._currency,
                "reference": reference,
            },
        )
        if response.status_code >= 400:
            if _is_payout_disabled(response, body):
                logger.warning("chapa_payout_unavailable", tx_ref=tx_ref, status_code=response.status_code)
                raise PayoutUnavailableError(
                    "Automated refund is not available for this gateway account. "
                    "Please process the refund manually via the gateway dashboard.",
                    details={"tx_ref": tx_ref},
                )
            raise GatewayError(
                f"Refund transfer rejected: {body.get('message', 'unknown error')}",
                details={"status_code": response.status_code, "tx_ref": tx_ref},
            )
        return str((body.get("data") or {}).get("reference") or reference)
