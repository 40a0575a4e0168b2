import time

import pytest
from eth_account import Account

from zkred_agent_id.identity import (
    AgentRegistrar,
    AlreadyRegistered,
    HandshakeInitiator,
    IdentitySettings,
    InvalidKeyFormat,
    RegistrationRequest,
    RegistryError,
    UnsupportedChain,
    eth_address_from_did,
    generate_did,
    generate_private_key,
)
from zkred_agent_id.identity.chains import DEFAULT_CHAINS, POLYGON_AMOY
from zkred_agent_id.identity.keys import load_account
from zkred_agent_id.identity.registration import recover_registration_signer, registration_domain
from zkred_agent_id.payments import Settled


class StubSettlementClient:
    def __init__(self, account):
        self.account = account
        self.payloads = []

    async def register(self, payload):
        self.payloads.append(payload)
        return Settled(status_code=200, transaction_hash="0xfeed", agent_id=9, data={"hash": "0xfeed", "agentId": 9})


@pytest.fixture
def settings():
    return IdentitySettings(settle_delay_seconds=0)


@pytest.fixture
def settlement_clients():
    return []


@pytest.fixture
def registrar(settings, registry_factory, settlement_clients):
    def settlement_factory(account):
        client = StubSettlementClient(account)
        settlement_clients.append(client)
        return client

    return AgentRegistrar(settings, client_factory=registry_factory, settlement_client_factory=settlement_factory)


def test_generate_private_key_format():
    key = generate_private_key()
    assert key.startswith("0x") and len(key) == 66
    assert load_account(key).address == Account.from_key(key).address
    assert generate_private_key() != key


@pytest.mark.parametrize(
    "key",
    [
        "1234",
        "11" * 32,
        "0x" + "zz" * 32,
        "0x" + "11" * 31,
        "0x" + "00" * 32,
    ],
)
def test_load_account_rejects_bad_keys(key):
    with pytest.raises(InvalidKeyFormat):
        load_account(key)


@pytest.mark.asyncio
async def test_register_derives_did_and_pays_fee(registrar, registry_factory, initiator_key):
    address = Account.from_key(initiator_key).address

    result = await registrar.register(initiator_key, "weather agent", POLYGON_AMOY, "https://agent.example")

    assert result.did == generate_did(address, "privado", "main")
    assert eth_address_from_did(result.did) == address.lower()
    assert result.agent_id == 1
    assert result.transaction_hash == "0x" + "ab" * 32
    assert result.service_endpoint == "https://agent.example"

    client = registry_factory.clients[0]
    assert client.registered == [
        {
            "did": result.did,
            "description": "weather agent",
            "service_endpoint": "https://agent.example",
            "value": 10**16,
        }
    ]
    assert client.closed


@pytest.mark.asyncio
async def test_second_registration_is_rejected(registrar, registry_factory, initiator_key):
    await registrar.register(initiator_key, "weather agent", POLYGON_AMOY, "https://agent.example")

    with pytest.raises(AlreadyRegistered):
        await registrar.register(initiator_key, "weather agent", POLYGON_AMOY, "https://agent.example")

    assert registry_factory.clients[1].registered == []
    assert registry_factory.clients[1].closed


@pytest.mark.asyncio
async def test_register_rejects_bad_key_before_any_network_call(registrar, registry_factory):
    with pytest.raises(InvalidKeyFormat):
        await registrar.register("1234", "agent", POLYGON_AMOY, "https://agent.example")
    assert registry_factory.clients == []


@pytest.mark.asyncio
async def test_register_unknown_chain(registrar, initiator_key):
    with pytest.raises(UnsupportedChain):
        await registrar.register(initiator_key, "agent", 1, "https://agent.example")


@pytest.mark.asyncio
async def test_register_uses_rpc_override(registrar, registry_factory, initiator_key):
    await registrar.register(
        initiator_key, "agent", POLYGON_AMOY, "https://agent.example", rpc_url="http://localhost:8545"
    )
    assert registry_factory.chains[0].rpc_url == "http://localhost:8545"


@pytest.mark.asyncio
async def test_register_with_custom_did_labels(registry_factory, initiator_key):
    registrar = AgentRegistrar(
        IdentitySettings(did_chain="polygon", did_network="amoy", settle_delay_seconds=0),
        client_factory=registry_factory,
    )
    result = await registrar.register(initiator_key, "agent", POLYGON_AMOY, "https://agent.example")
    assert result.did.startswith("did:iden3:polygon:amoy:")


@pytest.mark.asyncio
async def test_delegated_registration_signs_typed_request(
    registrar, registry_factory, settlement_clients, initiator_key, settings
):
    account = Account.from_key(initiator_key)
    before = int(time.time())

    result = await registrar.register_via_delegated_payment(
        initiator_key, "weather agent", POLYGON_AMOY, "https://agent.example"
    )

    assert result.transaction_hash == "0xfeed"
    assert result.agent_id == 9
    assert result.did == generate_did(account.address, "privado", "main")
    assert registry_factory.clients[0].owner is None
    assert registry_factory.clients[0].closed

    settlement = settlement_clients[0]
    assert settlement.account.address == account.address
    payload = settlement.payloads[0]
    assert payload.chain_id == POLYGON_AMOY
    assert payload.address == account.address

    wire = payload.to_wire()
    assert set(wire) == {"chainId", "address", "signatureBody", "signature"}
    body = wire["signatureBody"]
    assert body["agent"] == account.address.lower()
    assert body["nonce"] == 5
    assert body["serviceEndpoint"] == "https://agent.example"
    assert before + settings.request_ttl_seconds <= body["expiry"] <= int(time.time()) + settings.request_ttl_seconds

    request = RegistrationRequest.model_validate(body)
    chain = settings.chain(POLYGON_AMOY)
    assert recover_registration_signer(request, payload.signature, chain) == account.address


def test_registration_domain_binds_contract():
    domain = registration_domain(IdentitySettings().chain(POLYGON_AMOY))
    assert domain == {
        "name": "AgentRegistry",
        "version": "1",
        "chainId": POLYGON_AMOY,
        "verifyingContract": "0x4ff67c5e06298ff56a3a000ab40113d2c8380951",
    }


def _registry_with(registry_factory, resolve_after_register):
    """Wrap the stub factory so lookups after registerAgent behave differently."""

    def factory(chain, private_key):
        client = registry_factory(chain, private_key)
        register_agent = client.register_agent

        async def register(*args, **kwargs):
            receipt = await register_agent(*args, **kwargs)
            client.resolve_agent = resolve_after_register
            return receipt

        client.register_agent = register
        return client

    return factory


@pytest.mark.asyncio
async def test_register_keeps_hash_when_record_never_appears(registry_factory, initiator_key):
    lookups = []

    async def not_visible(address):
        lookups.append(address)
        return None

    registrar = AgentRegistrar(
        IdentitySettings(settle_delay_seconds=0, settle_attempts=2),
        client_factory=_registry_with(registry_factory, not_visible),
    )

    result = await registrar.register(initiator_key, "agent", POLYGON_AMOY, "https://agent.example")

    assert result.transaction_hash == "0x" + "ab" * 32
    assert result.agent_id is None
    assert len(lookups) == 2
    assert registry_factory.clients[0].closed


@pytest.mark.asyncio
async def test_register_survives_failing_lookup_after_mining(registry_factory, initiator_key):
    async def unreachable(address):
        raise RegistryError("connection reset")

    registrar = AgentRegistrar(
        IdentitySettings(settle_delay_seconds=0, settle_attempts=3),
        client_factory=_registry_with(registry_factory, unreachable),
    )

    result = await registrar.register(initiator_key, "agent", POLYGON_AMOY, "https://agent.example")

    assert result.transaction_hash == "0x" + "ab" * 32
    assert result.agent_id is None
    assert registry_factory.clients[0].closed


def test_clients_build_with_default_settings():
    registrar = AgentRegistrar()
    initiator = HandshakeInitiator()

    assert registrar.settings.chain(POLYGON_AMOY) == DEFAULT_CHAINS[POLYGON_AMOY]
    assert initiator.settings.chains[POLYGON_AMOY] == DEFAULT_CHAINS[POLYGON_AMOY]
    assert registrar.derive_did("0x" + "00" * 19 + "01").startswith("did:iden3:privado:main:")
