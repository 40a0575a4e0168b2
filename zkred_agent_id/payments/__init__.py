from .config import SettlementSettings
from .exceptions import PaymentRejected, SettlementError, X402ConfigurationError
from .models import (
    DelegatedRegistrationPayload,
    PaymentReceipt,
    PaymentRequired,
    Settled,
    SettlementOutcome,
    SettlementPhase,
)
from .settlement_client import DelegatedRegistrationClient

__all__ = [
    "SettlementSettings",
    "PaymentRejected",
    "SettlementError",
    "X402ConfigurationError",
    "DelegatedRegistrationPayload",
    "PaymentReceipt",
    "PaymentRequired",
    "Settled",
    "SettlementOutcome",
    "SettlementPhase",
    "DelegatedRegistrationClient",
]
