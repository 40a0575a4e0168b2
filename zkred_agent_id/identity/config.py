from __future__ import annotations

import os
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from zkred_agent_id.payments.config import SettlementSettings
from zkred_agent_id.utils.config_manager import ConfigManager

from .chains import DEFAULT_CHAINS, ChainConfig, resolve_chain_config

REGISTRATION_FEE_WEI = 10**16  # 0.01 native token
RPC_URL_ENV_TEMPLATE = "AGENT_ID_RPC_URL_{chain_id}"
REGISTRY_ENV_TEMPLATE = "AGENT_ID_REGISTRY_{chain_id}"


class IdentitySettings(BaseModel):
    """Immutable configuration for registration and handshake flows."""

    did_chain: str = Field(default="privado", description="Chain label embedded in issued DIDs")
    did_network: str = Field(default="main", description="Network label embedded in issued DIDs")

    registration_fee_wei: int = Field(default=REGISTRATION_FEE_WEI, ge=0)
    settle_delay_seconds: float = Field(default=5.0, ge=0)
    settle_attempts: int = Field(default=3, ge=1)
    request_ttl_seconds: int = Field(default=1800, gt=0)

    rpc_timeout_seconds: float = Field(default=30.0, gt=0)
    receipt_timeout_seconds: float = Field(default=120.0, gt=0)
    http_timeout_seconds: float = Field(default=30.0, gt=0)

    chains: Mapping[int, ChainConfig] = Field(default_factory=lambda: MappingProxyType(dict(DEFAULT_CHAINS)))
    settlement: SettlementSettings = Field(default_factory=SettlementSettings)

    model_config = {"frozen": True}

    @field_validator("did_chain", "did_network")
    @classmethod
    def _ensure_label(cls, value: str) -> str:
        if not value or ":" in value:
            raise ValueError("DID labels must be non-empty and must not contain ':'")
        return value

    @field_validator("chains", mode="after")
    @classmethod
    def _freeze_chains(cls, value: Mapping[int, ChainConfig]) -> Mapping[int, ChainConfig]:
        return MappingProxyType(dict(value))

    def chain(
        self,
        chain_id: int,
        rpc_url: Optional[str] = None,
        registry_address: Optional[str] = None,
    ) -> ChainConfig:
        """Chain deployment for ``chain_id`` with optional per-call overrides."""
        return resolve_chain_config(chain_id, rpc_url, registry_address, self.chains)

    @classmethod
    def load(cls, config_manager: Optional[ConfigManager] = None) -> "IdentitySettings":
        """Load settings from config.json with .env fallbacks."""
        load_dotenv()
        manager = config_manager or ConfigManager()
        raw_config = manager.get("identity", {}) or {}
        fields = cls.model_fields

        did_chain = os.getenv("AGENT_ID_DID_CHAIN", raw_config.get("did_chain", fields["did_chain"].default))
        did_network = os.getenv("AGENT_ID_DID_NETWORK", raw_config.get("did_network", fields["did_network"].default))
        settle_delay = float(
            os.getenv("AGENT_ID_SETTLE_DELAY", raw_config.get("settle_delay_seconds", fields["settle_delay_seconds"].default))
        )
        http_timeout = float(
            os.getenv("AGENT_ID_HTTP_TIMEOUT", raw_config.get("http_timeout_seconds", fields["http_timeout_seconds"].default))
        )

        overrides: Dict[str, Any] = {}
        for key in ("registration_fee_wei", "settle_attempts", "request_ttl_seconds",
                    "rpc_timeout_seconds", "receipt_timeout_seconds"):
            if key in raw_config:
                overrides[key] = raw_config[key]

        return cls(
            did_chain=did_chain,
            did_network=did_network,
            settle_delay_seconds=settle_delay,
            http_timeout_seconds=http_timeout,
            chains=_load_chains(raw_config.get("chains") or {}),
            settlement=SettlementSettings.load(manager),
            **overrides,
        )


def _load_chains(raw_chains: Mapping[str, Any]) -> Dict[int, ChainConfig]:
    """Default chain table overlaid with config.json entries and env overrides."""
    chains: Dict[int, ChainConfig] = dict(DEFAULT_CHAINS)
    for key, entry in raw_chains.items():
        chain_id = int(key)
        base = chains.get(chain_id)
        if base is None:
            chains[chain_id] = ChainConfig(chain_id=chain_id, **entry)
        else:
            chains[chain_id] = base.model_copy(update=dict(entry))

    for chain_id, chain in list(chains.items()):
        rpc_url = os.getenv(RPC_URL_ENV_TEMPLATE.format(chain_id=chain_id))
        registry = os.getenv(REGISTRY_ENV_TEMPLATE.format(chain_id=chain_id))
        if rpc_url or registry:
            chains[chain_id] = chain.model_copy(
                update={
                    "rpc_url": rpc_url or chain.rpc_url,
                    "registry_address": registry or chain.registry_address,
                }
            )
    return chains
