"""
Supported chains and their default registry deployments.
"""

from types import MappingProxyType
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from .exceptions import UnsupportedChain

POLYGON_AMOY = 80002
HEDERA_TESTNET = 296
ZERO_G_TESTNET = 16602


class ChainConfig(BaseModel):
    """RPC endpoint and AgentRegistry deployment for one chain"""

    chain_id: int
    name: str = Field(default="custom")
    rpc_url: str
    registry_address: str

    model_config = {"frozen": True}


DEFAULT_CHAINS: Mapping[int, ChainConfig] = MappingProxyType(
    {
        POLYGON_AMOY: ChainConfig(
            chain_id=POLYGON_AMOY,
            name="polygon-amoy",
            rpc_url="https://rpc-amoy.polygon.technology",
            registry_address="0x4FF67C5E06298Ff56A3a000AB40113D2C8380951",
        ),
        HEDERA_TESTNET: ChainConfig(
            chain_id=HEDERA_TESTNET,
            name="hedera-testnet",
            rpc_url="https://testnet.hashio.io/api",
            registry_address="0x0E8095137f57BE708A130D264874B91737C12fe4",
        ),
        ZERO_G_TESTNET: ChainConfig(
            chain_id=ZERO_G_TESTNET,
            name="0g-testnet",
            rpc_url="https://evmrpc-testnet.0g.ai",
            registry_address="0x73697bc046072064eb5bcd0d30bd47ec92b1ea0e",
        ),
    }
)


def resolve_chain_config(
    chain_id: int,
    rpc_url: Optional[str] = None,
    registry_address: Optional[str] = None,
    table: Mapping[int, ChainConfig] = DEFAULT_CHAINS,
) -> ChainConfig:
    """Merge explicit overrides with the default deployment of ``chain_id``.

    Raises:
        UnsupportedChain: chain is not in ``table`` and either override is missing
    """
    default = table.get(chain_id)
    if default is None:
        if not rpc_url or not registry_address:
            raise UnsupportedChain(
                f"Unsupported chain ID {chain_id}: provide both rpc_url and registry_address"
            )
        return ChainConfig(chain_id=chain_id, rpc_url=rpc_url, registry_address=registry_address)

    if not rpc_url and not registry_address:
        return default
    return default.model_copy(
        update={
            "rpc_url": rpc_url or default.rpc_url,
            "registry_address": registry_address or default.registry_address,
        }
    )
