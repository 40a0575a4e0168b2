from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional

import httpx
from eth_account.signers.local import LocalAccount
from x402.clients.base import decode_x_payment_response, x402Client
from x402.encoding import safe_base64_decode
from x402.types import PaymentRequirements

from .config import SettlementSettings
from .exceptions import PaymentRejected, SettlementError, X402ConfigurationError
from .models import (
    DelegatedRegistrationPayload,
    PaymentReceipt,
    PaymentRequired,
    Settled,
    SettlementOutcome,
)

logger = logging.getLogger(__name__)

PAYMENT_REQUEST_HEADER = "x-payment-request"
PAYMENT_REQUIRED_HEADER = "payment-required"
PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"

PaymentHeaderBuilder = Callable[[PaymentRequired], str]


class DelegatedRegistrationClient:
    """Submits signed registration requests to the x402 settlement service.

    The exchange is an explicit two-state protocol: the first POST either
    settles directly or answers 402 with payment requirements, in which case
    the same body is posted again with an X-PAYMENT proof attached.
    """

    def __init__(
        self,
        settings: Optional[SettlementSettings] = None,
        account: Optional[LocalAccount] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        payment_header_builder: Optional[PaymentHeaderBuilder] = None,
    ) -> None:
        self.settings = settings or SettlementSettings()
        self.account = account
        self._http_client = http_client
        self._build_payment_header = payment_header_builder or self.build_payment_header

    # ------------------------------------------------------------------ #
    # Protocol
    # ------------------------------------------------------------------ #
    async def register(self, payload: DelegatedRegistrationPayload) -> Settled:
        """Run request -> payment-required -> resubmit-with-proof to completion."""
        outcome = await self.submit(payload)
        if isinstance(outcome, Settled):
            return outcome
        logger.info("Settlement service requested payment for %s, resubmitting with proof", payload.address)
        return await self.resubmit_with_payment(payload, outcome)

    async def submit(self, payload: DelegatedRegistrationPayload) -> SettlementOutcome:
        response = await self._post(payload)
        if self._is_payment_required(response):
            return self._parse_payment_required(response)
        if not response.is_success:
            raise SettlementError(self._error_message(response), status_code=response.status_code)
        return self._parse_settled(response)

    async def resubmit_with_payment(
        self,
        payload: DelegatedRegistrationPayload,
        payment_required: PaymentRequired,
    ) -> Settled:
        header = self._build_payment_header(payment_required)
        response = await self._post(payload, headers={PAYMENT_HEADER: header})
        if response.status_code == 402:
            raise PaymentRejected(self._error_message(response), status_code=402)
        if not response.is_success:
            raise SettlementError(self._error_message(response), status_code=response.status_code)
        return self._parse_settled(response)

    # ------------------------------------------------------------------ #
    # x402 helpers
    # ------------------------------------------------------------------ #
    def build_payment_header(self, payment_required: PaymentRequired) -> str:
        """Create a signed X-PAYMENT header answering ``payment_required``."""
        if self.account is None:
            raise X402ConfigurationError("A signing account is required to pay for delegated registration.")
        requirements = self._select_requirements(payment_required)

        max_value = self.settings.max_payment_atomic
        required_value = int(requirements.max_amount_required)
        if max_value is not None and required_value > max_value:
            raise SettlementError(
                f"Payment requirement exceeds allowed maximum: required {required_value}, max_value {max_value}."
            )
        client = x402Client(account=self.account, max_value=max_value)
        return client.create_payment_header(requirements)

    def decode_payment_response(self, header_value: str) -> PaymentReceipt:
        payload = decode_x_payment_response(header_value)
        return PaymentReceipt(
            success=bool(payload.get("success")),
            transaction=payload.get("transaction"),
            network=payload.get("network"),
            payer=payload.get("payer"),
            error_reason=payload.get("error_reason") or payload.get("errorReason") or payload.get("error"),
            raw=payload,
        )

    def _select_requirements(self, payment_required: PaymentRequired) -> PaymentRequirements:
        if not payment_required.accepts:
            raise SettlementError("Payment required but the service offered no payment requirements.")
        candidates = [PaymentRequirements.model_validate(entry) for entry in payment_required.accepts]
        scheme = self.settings.preferred_scheme
        network = self.settings.preferred_network
        for candidate in candidates:
            if candidate.scheme == scheme and (network is None or candidate.network == network):
                return candidate
        for candidate in candidates:
            if candidate.scheme == scheme:
                return candidate
        return candidates[0]

    # ------------------------------------------------------------------ #
    # HTTP plumbing
    # ------------------------------------------------------------------ #
    async def _post(
        self,
        payload: DelegatedRegistrationPayload,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = self.settings.register_url
        try:
            if self._http_client is not None:
                return await self._http_client.post(url, json=payload.to_wire(), headers=headers)
            async with httpx.AsyncClient(timeout=self.settings.timeout_seconds) as client:
                return await client.post(url, json=payload.to_wire(), headers=headers)
        except httpx.HTTPError as exc:
            raise SettlementError(f"Settlement request failed: {exc}") from exc

    @staticmethod
    def _is_payment_required(response: httpx.Response) -> bool:
        if response.status_code == 402:
            return True
        return not response.is_success and PAYMENT_REQUEST_HEADER in response.headers

    def _parse_payment_required(self, response: httpx.Response) -> PaymentRequired:
        payload: Dict[str, Any] = {}
        header_value = response.headers.get(PAYMENT_REQUIRED_HEADER)
        if header_value:
            payload = json.loads(safe_base64_decode(header_value))
        else:
            try:
                body = response.json()
            except json.JSONDecodeError:
                body = None
            if isinstance(body, dict):
                payload = body

        accepts = payload.get("accepts") or []
        return PaymentRequired(
            x402_version=int(payload.get("x402Version") or payload.get("x402_version") or 1),
            accepts=[entry for entry in accepts if isinstance(entry, dict)],
            error=payload.get("error"),
            payment_request_header=response.headers.get(PAYMENT_REQUEST_HEADER),
        )

    def _parse_settled(self, response: httpx.Response) -> Settled:
        try:
            body = response.json()
        except json.JSONDecodeError as exc:
            raise SettlementError("Settlement service returned a non-JSON body", response.status_code) from exc
        data = body.get("data") if isinstance(body, dict) else None
        data = data if isinstance(data, dict) else {}

        receipt = None
        receipt_header = response.headers.get(PAYMENT_RESPONSE_HEADER)
        if receipt_header:
            try:
                receipt = self.decode_payment_response(receipt_header)
            except Exception as exc:
                logger.warning("Failed to decode %s header: %s", PAYMENT_RESPONSE_HEADER, exc)

        agent_id = data.get("agentId")
        if agent_id is not None:
            try:
                agent_id = int(agent_id)
            except (TypeError, ValueError) as exc:
                raise SettlementError(
                    f"Settlement service returned a non-numeric agentId: {agent_id!r}", response.status_code
                ) from exc
        return Settled(
            status_code=response.status_code,
            transaction_hash=data.get("hash"),
            agent_id=agent_id,
            data=data,
            payment_receipt=receipt,
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except json.JSONDecodeError:
            body = None
        if isinstance(body, dict):
            message = body.get("error") or body.get("message")
            if message:
                return str(message)
        return f"HTTP {response.status_code}"
