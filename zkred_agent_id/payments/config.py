from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from zkred_agent_id.utils.config_manager import ConfigManager

from .exceptions import X402ConfigurationError


class SettlementSettings(BaseModel):
    """Resolved configuration of the x402 registration settlement service."""

    api_url: str = Field(default="http://localhost:4020")
    register_path: str = Field(default="/register")
    timeout_seconds: float = Field(default=30.0, gt=0)

    preferred_scheme: str = Field(default="exact")
    preferred_network: Optional[str] = Field(default=None)
    max_payment_atomic: Optional[int] = Field(
        default=None, ge=0, description="Upper bound on the payment signed on the caller's behalf"
    )

    model_config = {"frozen": True}

    @field_validator("api_url")
    @classmethod
    def _ensure_http_scheme(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise X402ConfigurationError("Settlement API URL must start with http:// or https://")
        return value.rstrip("/")

    @field_validator("register_path")
    @classmethod
    def _ensure_leading_slash(cls, value: str) -> str:
        return value if value.startswith("/") else f"/{value}"

    @property
    def register_url(self) -> str:
        return f"{self.api_url}{self.register_path}"

    @classmethod
    def load(cls, config_manager: Optional[ConfigManager] = None) -> "SettlementSettings":
        """Load settings from config.json with environment fallbacks."""
        manager = config_manager or ConfigManager()
        raw_config = manager.get("x402", {}) or {}
        fields = cls.model_fields

        api_url = os.getenv("X402_API_URL", raw_config.get("api_url", fields["api_url"].default))
        register_path = raw_config.get("register_path", fields["register_path"].default)
        timeout_seconds = float(
            os.getenv("X402_HTTP_TIMEOUT", raw_config.get("timeout_seconds", fields["timeout_seconds"].default))
        )
        preferred_scheme = raw_config.get("preferred_scheme", fields["preferred_scheme"].default)
        preferred_network = os.getenv("X402_PREFERRED_NETWORK", raw_config.get("preferred_network"))

        max_payment_env = os.getenv("X402_MAX_PAYMENT_ATOMIC")
        max_payment_atomic = int(max_payment_env) if max_payment_env else raw_config.get("max_payment_atomic")

        return cls(
            api_url=api_url,
            register_path=register_path,
            timeout_seconds=timeout_seconds,
            preferred_scheme=preferred_scheme,
            preferred_network=preferred_network,
            max_payment_atomic=max_payment_atomic,
        )
