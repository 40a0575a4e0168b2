"""
Agent DID Identity Module
did:iden3 identities anchored to Ethereum keys, on-chain registration and
agent-to-agent handshakes
"""

from .chains import DEFAULT_CHAINS, ChainConfig, resolve_chain_config
from .config import IdentitySettings
from .did_codec import eth_address_from_did, generate_did, is_ethereum_controlled
from .did_models import (
    AgentRecord,
    HandshakeSession,
    HandshakeState,
    RegistrationReceipt,
    RegistrationRequest,
    RegistrationResult,
)
from .exceptions import (
    AgentIdError,
    AlreadyRegistered,
    DIDCodecError,
    HandshakeError,
    InvalidAddressLength,
    InvalidChecksum,
    InvalidEncodedLength,
    InvalidKeyFormat,
    MalformedDID,
    RegistryError,
    UnknownAgent,
    UnsupportedChain,
)
from .handshake import (
    HandshakeInitiator,
    HandshakeResponder,
    canonical_handshake_message,
    generate_challenge,
    sign_handshake,
    verify_signature,
)
from .keys import generate_private_key
from .registration import AgentRegistrar
from .registry_client import AgentRegistryClient, describe_registry_error

__all__ = [
    "DEFAULT_CHAINS",
    "ChainConfig",
    "resolve_chain_config",
    "IdentitySettings",
    "eth_address_from_did",
    "generate_did",
    "is_ethereum_controlled",
    "AgentRecord",
    "HandshakeSession",
    "HandshakeState",
    "RegistrationReceipt",
    "RegistrationRequest",
    "RegistrationResult",
    "AgentIdError",
    "AlreadyRegistered",
    "DIDCodecError",
    "HandshakeError",
    "InvalidAddressLength",
    "InvalidChecksum",
    "InvalidEncodedLength",
    "InvalidKeyFormat",
    "MalformedDID",
    "RegistryError",
    "UnknownAgent",
    "UnsupportedChain",
    "HandshakeInitiator",
    "HandshakeResponder",
    "canonical_handshake_message",
    "generate_challenge",
    "sign_handshake",
    "verify_signature",
    "generate_private_key",
    "AgentRegistrar",
    "AgentRegistryClient",
    "describe_registry_error",
]
