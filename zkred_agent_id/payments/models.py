from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class SettlementPhase(str, Enum):
    """States of the two-phase delegated registration exchange."""

    REQUESTED = "requested"
    PAYMENT_REQUIRED = "payment_required"
    SETTLED = "settled"


class DelegatedRegistrationPayload(BaseModel):
    """Body posted to the settlement service's /register endpoint."""

    chain_id: int = Field(alias="chainId")
    address: str
    signature_body: Dict[str, Any] = Field(alias="signatureBody")
    signature: str

    model_config = {"populate_by_name": True}

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class PaymentRequired(BaseModel):
    """First-phase answer: the service wants payment proof before settling."""

    phase: SettlementPhase = SettlementPhase.PAYMENT_REQUIRED
    x402_version: int = Field(default=1)
    accepts: List[Dict[str, Any]] = Field(default_factory=list)
    error: Optional[str] = None
    payment_request_header: Optional[str] = None


class PaymentReceipt(BaseModel):
    """Decoded X-PAYMENT-RESPONSE header."""

    success: bool = False
    transaction: Optional[str] = None
    network: Optional[str] = None
    payer: Optional[str] = None
    error_reason: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class Settled(BaseModel):
    """Final answer of the settlement service."""

    phase: SettlementPhase = SettlementPhase.SETTLED
    status_code: int
    transaction_hash: Optional[str] = None
    agent_id: Optional[int] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    payment_receipt: Optional[PaymentReceipt] = None


SettlementOutcome = Union[PaymentRequired, Settled]
