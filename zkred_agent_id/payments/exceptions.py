class X402ConfigurationError(Exception):
    """Raised when required settlement or signing configuration is missing or invalid."""


class SettlementError(Exception):
    """Raised when the settlement service answers with an unexpected failure."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PaymentRejected(SettlementError):
    """Raised when the resubmitted request carrying payment proof is refused."""
