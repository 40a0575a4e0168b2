"""
AgentRegistry Smart Contract Client
Handles on-chain lookups and registrations of agent identities
"""

import logging
from typing import Any, Dict, Mapping, Optional

from aiohttp import ClientTimeout
from eth_account import Account
from eth_utils import to_checksum_address
from web3 import AsyncWeb3, Web3
from web3.contract import AsyncContract
from web3.exceptions import ContractLogicError

from .chains import DEFAULT_CHAINS, ChainConfig, resolve_chain_config
from .did_models import AgentRecord, RegistrationReceipt
from .exceptions import RegistryError
from .registry_abi import get_abi

logger = logging.getLogger(__name__)

_REVERT_PREFIX = "execution reverted: "


def _nested_message(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        message = value.get("message")
        if message:
            return str(message)
        return _nested_message(value.get("error"))
    message = getattr(value, "message", None)
    return str(message) if message else None


def describe_registry_error(exc: BaseException) -> str:
    """Collapse provider specific error shapes into one human-readable cause.

    Priority: revert reason, nested ``error.message``, generic message,
    first revert argument.
    """
    reason = getattr(exc, "reason", None)
    if not reason and isinstance(exc, ContractLogicError):
        reason = getattr(exc, "message", None) or str(exc)
    if reason:
        reason = str(reason)
        return reason[len(_REVERT_PREFIX):] if reason.startswith(_REVERT_PREFIX) else reason

    nested = _nested_message(getattr(exc, "error", None))
    if not nested:
        nested = _nested_message(getattr(exc, "rpc_response", None))
    if not nested and exc.args:
        nested = _nested_message(exc.args[0])
    if nested:
        return nested

    message = getattr(exc, "message", None) or str(exc)
    if message:
        return str(message)

    revert_args = getattr(getattr(exc, "revert", None), "args", None)
    if revert_args:
        return str(revert_args[0])
    return "Unknown error"


class AgentRegistryClient:
    """Client for one AgentRegistry deployment"""

    def __init__(
        self,
        chain: ChainConfig,
        private_key: Optional[str] = None,
        request_timeout: float = 30.0,
        receipt_timeout: float = 120.0,
        w3: Optional[AsyncWeb3] = None,
    ):
        self.chain = chain
        self.receipt_timeout = receipt_timeout
        self.w3 = w3 or AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                chain.rpc_url,
                request_kwargs={"timeout": ClientTimeout(total=request_timeout)},
            )
        )
        self.account = Account.from_key(private_key) if private_key else None
        self.contract = self._load_contract(chain.registry_address, "AgentRegistry")

    @classmethod
    def for_chain(
        cls,
        chain_id: int,
        rpc_url: Optional[str] = None,
        registry_address: Optional[str] = None,
        private_key: Optional[str] = None,
        table: Mapping[int, ChainConfig] = DEFAULT_CHAINS,
        **kwargs: Any,
    ) -> "AgentRegistryClient":
        """Build a client from the chain table, applying explicit overrides."""
        chain = resolve_chain_config(chain_id, rpc_url, registry_address, table)
        return cls(chain, private_key=private_key, **kwargs)

    def _load_contract(self, address: str, contract_name: str) -> AsyncContract:
        abi = get_abi(contract_name)
        if not abi:
            raise ValueError(f"No ABI found for {contract_name}")
        return self.w3.eth.contract(address=to_checksum_address(address), abi=abi)

    async def __aenter__(self) -> "AgentRegistryClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        disconnect = getattr(self.w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()

    @property
    def address(self) -> Optional[str]:
        return self.account.address if self.account else None

    # ---------------- Reads ----------------
    async def resolve_agent(self, address: str) -> Optional[AgentRecord]:
        """Look up the agent owned by ``address``; None when not registered."""
        try:
            result = await self.contract.functions.getAgentByAddress(to_checksum_address(address)).call()
        except ContractLogicError as exc:
            logger.debug("No agent for %s on chain %s: %s", address, self.chain.chain_id, describe_registry_error(exc))
            return None
        except Exception as exc:
            raise RegistryError(describe_registry_error(exc)) from exc

        did, agent_id, description, service_endpoint = result
        if not did:
            return None
        return AgentRecord(
            did=did,
            agent_id=int(agent_id),
            description=description,
            service_endpoint=service_endpoint,
        )

    async def current_nonce(self, address: str) -> int:
        """Registry nonce used to sign delegated registrations."""
        try:
            return int(await self.contract.functions.nonces(to_checksum_address(address)).call())
        except Exception as exc:
            raise RegistryError(describe_registry_error(exc)) from exc

    # ---------------- Writes ----------------
    async def register_agent(
        self,
        did: str,
        description: str,
        service_endpoint: str,
        value: int,
    ) -> RegistrationReceipt:
        """Submit registerAgent with ``value`` wei attached and wait for the receipt."""
        if not self.account:
            raise ValueError("Private key required for registration")

        try:
            tx = await self.contract.functions.registerAgent(
                did, description, service_endpoint
            ).build_transaction(await self._tx_params(value))
            receipt = await self._send_tx(tx)
        except RegistryError:
            raise
        except Exception as exc:
            raise RegistryError(describe_registry_error(exc)) from exc

        tx_hash = Web3.to_hex(receipt["transactionHash"])
        logger.info("registerAgent mined on chain %s: %s", self.chain.chain_id, tx_hash)

        try:
            record = await self.resolve_agent(self.account.address)
        except RegistryError as exc:
            logger.warning("Agent lookup after %s failed: %s", tx_hash, exc.message)
            record = None
        return RegistrationReceipt(
            transaction_hash=tx_hash,
            block_number=receipt.get("blockNumber"),
            agent_id=record.agent_id if record else None,
        )

    # ---------------- Helpers ----------------
    async def _tx_params(self, value: int = 0) -> Dict[str, Any]:
        return {
            "from": self.account.address,
            "value": value,
            "nonce": await self.w3.eth.get_transaction_count(self.account.address),
            "chainId": self.chain.chain_id,
            "gasPrice": await self.w3.eth.gas_price,
        }

    async def _send_tx(self, tx: Dict[str, Any]) -> Any:
        signed = self.account.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        if receipt["status"] != 1:
            raise RegistryError(f"Transaction failed: {Web3.to_hex(tx_hash)}")
        return receipt
