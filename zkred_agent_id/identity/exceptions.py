"""Error hierarchy for DID handling, registry access and handshakes."""


class AgentIdError(Exception):
    """Base class for all agent identity errors."""


class DIDCodecError(AgentIdError, ValueError):
    """Raised when a DID or address cannot be encoded or decoded."""


class InvalidAddressLength(DIDCodecError):
    """Ethereum address is not exactly 20 bytes of hex."""


class MalformedDID(DIDCodecError):
    """DID string does not have the did:iden3:<chain>:<network>:<id> shape."""


class InvalidEncodedLength(DIDCodecError):
    """Base58 identifier does not decode to 31 bytes."""


class InvalidChecksum(DIDCodecError):
    """Embedded CRC16 does not match the identifier bytes (strict mode only)."""


class InvalidKeyFormat(AgentIdError, ValueError):
    """Private key is not a 0x-prefixed 64 character hex string."""


class AlreadyRegistered(AgentIdError):
    """The address already owns an agent record in the registry."""


class UnknownAgent(AgentIdError):
    """The registry has no agent for the given DID."""


class UnsupportedChain(AgentIdError):
    """No default RPC endpoint / registry contract for the chain id."""


class RegistryError(AgentIdError):
    """A remote registry call failed; carries the normalized cause."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class HandshakeError(AgentIdError):
    """The initiating leg of a handshake could not be carried out."""
