"""
Agent registration flows

Direct registration pays the native registration fee from the agent's own
wallet. Delegated registration signs an EIP-712 request and lets the x402
settlement service submit it.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount

from zkred_agent_id.payments import DelegatedRegistrationClient, DelegatedRegistrationPayload

from .chains import ChainConfig
from .config import IdentitySettings
from .did_codec import generate_did
from .did_models import RegistrationReceipt, RegistrationRequest, RegistrationResult
from .exceptions import AlreadyRegistered, RegistryError
from .keys import load_account
from .registry_abi import AGENT_REGISTRATION_TYPES
from .registry_client import AgentRegistryClient

logger = logging.getLogger(__name__)

REGISTRY_DOMAIN_NAME = "AgentRegistry"
REGISTRY_DOMAIN_VERSION = "1"

RegistryClientFactory = Callable[[ChainConfig, Optional[str]], AgentRegistryClient]
SettlementClientFactory = Callable[[LocalAccount], DelegatedRegistrationClient]


def registration_domain(chain: ChainConfig) -> dict:
    return {
        "name": REGISTRY_DOMAIN_NAME,
        "version": REGISTRY_DOMAIN_VERSION,
        "chainId": chain.chain_id,
        "verifyingContract": chain.registry_address.lower(),
    }


def sign_registration_request(account: LocalAccount, request: RegistrationRequest, chain: ChainConfig) -> str:
    """EIP-712 signature of ``request`` bound to the chain's registry contract"""
    signable = encode_typed_data(
        domain_data=registration_domain(chain),
        message_types=AGENT_REGISTRATION_TYPES,
        message_data=request.to_typed_message(),
    )
    signature = account.sign_message(signable).signature.hex()
    return signature if signature.startswith("0x") else f"0x{signature}"


def recover_registration_signer(request: RegistrationRequest, signature: str, chain: ChainConfig) -> str:
    """Address that produced ``signature`` over ``request``"""
    signable = encode_typed_data(
        domain_data=registration_domain(chain),
        message_types=AGENT_REGISTRATION_TYPES,
        message_data=request.to_typed_message(),
    )
    return Account.recover_message(signable, signature=signature)


class AgentRegistrar:
    """Registers agents in the AgentRegistry of a supported chain"""

    def __init__(
        self,
        settings: Optional[IdentitySettings] = None,
        client_factory: Optional[RegistryClientFactory] = None,
        settlement_client_factory: Optional[SettlementClientFactory] = None,
    ):
        self.settings = settings or IdentitySettings()
        self._client_factory = client_factory or self._default_client
        self._settlement_client_factory = settlement_client_factory or self._default_settlement_client

    def _default_client(self, chain: ChainConfig, private_key: Optional[str]) -> AgentRegistryClient:
        return AgentRegistryClient(
            chain,
            private_key=private_key,
            request_timeout=self.settings.rpc_timeout_seconds,
            receipt_timeout=self.settings.receipt_timeout_seconds,
        )

    def _default_settlement_client(self, account: LocalAccount) -> DelegatedRegistrationClient:
        return DelegatedRegistrationClient(self.settings.settlement, account=account)

    def derive_did(self, address: str) -> str:
        return generate_did(address, self.settings.did_chain, self.settings.did_network)

    async def register(
        self,
        private_key: str,
        description: str,
        chain_id: int,
        service_endpoint: str,
        rpc_url: Optional[str] = None,
    ) -> RegistrationResult:
        """
        Register an agent paying the native registration fee.

        Args:
            private_key: 0x-prefixed hex key of the agent wallet
            description: Description of the agent
            chain_id: Target chain id
            service_endpoint: Base URL other agents use to reach this agent
            rpc_url: Optional RPC override for the chain

        Returns:
            RegistrationResult with transaction hash, DID and agent id

        Raises:
            InvalidKeyFormat: malformed key material
            AlreadyRegistered: the address already owns an agent
            UnsupportedChain: unknown chain without explicit endpoint/contract
            RegistryError: remote call failed
        """
        account = load_account(private_key)
        chain = self.settings.chain(chain_id, rpc_url)
        did = self.derive_did(account.address)

        client = self._client_factory(chain, private_key)
        try:
            existing = await client.resolve_agent(account.address)
            if existing is not None:
                raise AlreadyRegistered(f"Agent already registered for {account.address} (agentId={existing.agent_id})")

            logger.info("Registering %s on chain %s", did, chain.chain_id)
            receipt = await client.register_agent(
                did, description, service_endpoint, value=self.settings.registration_fee_wei
            )
            agent_id = await self._settled_agent_id(client, account.address, receipt)
        finally:
            await client.close()

        return RegistrationResult(
            transaction_hash=receipt.transaction_hash,
            did=did,
            description=description,
            service_endpoint=service_endpoint,
            agent_id=agent_id,
        )

    async def _settled_agent_id(
        self,
        client: AgentRegistryClient,
        address: str,
        receipt: RegistrationReceipt,
    ) -> Optional[int]:
        """Re-read the registry until the new record is visible."""
        if receipt.agent_id is not None:
            return receipt.agent_id
        for attempt in range(1, self.settings.settle_attempts + 1):
            await asyncio.sleep(self.settings.settle_delay_seconds)
            try:
                record = await client.resolve_agent(address)
            except RegistryError as exc:
                logger.warning("Agent lookup for %s failed (attempt %d): %s", address, attempt, exc.message)
                continue
            if record is not None:
                return record.agent_id
            logger.debug("Agent %s not visible yet (attempt %d)", address, attempt)
        logger.warning(
            "Registration of %s mined in %s but the record is not readable yet", address, receipt.transaction_hash
        )
        return None

    async def register_via_delegated_payment(
        self,
        private_key: str,
        description: str,
        chain_id: int,
        service_endpoint: str,
        rpc_url: Optional[str] = None,
    ) -> RegistrationResult:
        """Register through the settlement service, paying with x402 instead of native gas."""
        account = load_account(private_key)
        chain = self.settings.chain(chain_id, rpc_url)
        did = self.derive_did(account.address)

        client = self._client_factory(chain, None)
        try:
            nonce = await client.current_nonce(account.address)
        finally:
            await client.close()

        request = RegistrationRequest(
            agent=account.address.lower(),
            did=did,
            description=description,
            service_endpoint=service_endpoint,
            nonce=nonce,
            expiry=int(time.time()) + self.settings.request_ttl_seconds,
        )
        payload = DelegatedRegistrationPayload(
            chain_id=chain.chain_id,
            address=account.address,
            signature_body=request.model_dump(by_alias=True),
            signature=sign_registration_request(account, request, chain),
        )

        logger.info("Submitting delegated registration of %s on chain %s", did, chain.chain_id)
        settled = await self._settlement_client_factory(account).register(payload)
        return RegistrationResult(
            transaction_hash=settled.transaction_hash,
            did=did,
            description=description,
            service_endpoint=service_endpoint,
            agent_id=settled.agent_id,
        )
