from typing import Dict, List, Optional

import pytest
from eth_account import Account

from zkred_agent_id.identity import AgentRecord, ChainConfig, RegistrationReceipt

INITIATOR_KEY = "0x" + "11" * 32
RECEIVER_KEY = "0x" + "22" * 32


class StubRegistry:
    """In-memory stand-in for AgentRegistryClient."""

    def __init__(self, records: Dict[str, AgentRecord], owner: Optional[str] = None, nonce: int = 0):
        self.records = records
        self.owner = owner
        self.nonce = nonce
        self.registered: List[dict] = []
        self.closed = False

    async def resolve_agent(self, address: str) -> Optional[AgentRecord]:
        return self.records.get(address.lower())

    async def current_nonce(self, address: str) -> int:
        return self.nonce

    async def register_agent(self, did, description, service_endpoint, value) -> RegistrationReceipt:
        self.registered.append(
            {"did": did, "description": description, "service_endpoint": service_endpoint, "value": value}
        )
        self.records[self.owner.lower()] = AgentRecord(
            did=did,
            agent_id=len(self.records) + 1,
            description=description,
            service_endpoint=service_endpoint,
        )
        return RegistrationReceipt(transaction_hash="0x" + "ab" * 32)

    async def close(self) -> None:
        self.closed = True


class StubRegistryFactory:
    def __init__(self, nonce: int = 0):
        self.records: Dict[str, AgentRecord] = {}
        self.nonce = nonce
        self.clients: List[StubRegistry] = []
        self.chains: List[ChainConfig] = []

    def __call__(self, chain: ChainConfig, private_key: Optional[str]) -> StubRegistry:
        owner = Account.from_key(private_key).address if private_key else None
        client = StubRegistry(self.records, owner=owner, nonce=self.nonce)
        self.clients.append(client)
        self.chains.append(chain)
        return client


@pytest.fixture
def registry_factory():
    return StubRegistryFactory(nonce=5)


@pytest.fixture
def initiator_key():
    return INITIATOR_KEY


@pytest.fixture
def receiver_key():
    return RECEIVER_KEY
