"""
did:iden3 codec for Ethereum-controlled identities

Identifier layout (31 bytes, base58 encoded):

    idType (2) | zero padding (7) | ethereum address (20) | crc16 xmodem, little-endian (2)

The checksum covers the first 29 bytes. A non-zero padding marks an identity
whose genesis state is not an Ethereum address; such DIDs decode to ``None``.
"""

import binascii
import logging
from typing import Optional

import base58

from .exceptions import InvalidAddressLength, InvalidChecksum, InvalidEncodedLength, MalformedDID

logger = logging.getLogger(__name__)

DID_METHOD = "iden3"
IDEN3_ID_TYPE = bytes([0x0D, 0x01])
PADDING_LENGTH = 7
ADDRESS_LENGTH = 20
CHECKSUM_LENGTH = 2
DID_PAYLOAD_LENGTH = len(IDEN3_ID_TYPE) + PADDING_LENGTH + ADDRESS_LENGTH + CHECKSUM_LENGTH

_PADDING = slice(2, 2 + PADDING_LENGTH)
_ADDRESS = slice(2 + PADDING_LENGTH, 2 + PADDING_LENGTH + ADDRESS_LENGTH)
_CHECKSUMMED = slice(0, DID_PAYLOAD_LENGTH - CHECKSUM_LENGTH)


def crc16_xmodem(data: bytes) -> int:
    """CRC-16/XMODEM (poly 0x1021, init 0x0000, no reflection)."""
    return binascii.crc_hqx(data, 0)


def _address_bytes(address: str) -> bytes:
    raw = address[2:] if address[:2] in ("0x", "0X") else address
    try:
        value = bytes.fromhex(raw)
    except ValueError as exc:
        raise InvalidAddressLength(f"Ethereum address must be 20 bytes of hex: {address!r}") from exc
    if len(value) != ADDRESS_LENGTH:
        raise InvalidAddressLength(f"Ethereum address must be 20 bytes, got {len(value)}")
    return value


def generate_did(address: str, chain: str, network: str) -> str:
    """Build the did:iden3 identifier controlled by ``address``.

    Args:
        address: Ethereum address, with or without ``0x`` prefix
        chain: Free-form chain label (e.g. "privado", "polygon")
        network: Free-form network label (e.g. "main", "amoy")

    Returns:
        DID string ``did:iden3:<chain>:<network>:<base58Id>``

    Raises:
        InvalidAddressLength: address is not 20 bytes of hex
    """
    base = IDEN3_ID_TYPE + bytes(PADDING_LENGTH) + _address_bytes(address)
    checksum = crc16_xmodem(base).to_bytes(CHECKSUM_LENGTH, "little")
    identifier = base58.b58encode(base + checksum).decode("ascii")
    return f"did:{DID_METHOD}:{chain}:{network}:{identifier}"


def decode_did_payload(did: str) -> bytes:
    """Return the raw 31 identifier bytes of a did:iden3 string."""
    parts = did.split(":")
    if len(parts) < 5:
        raise MalformedDID(f"Invalid DID format: {did!r}")
    try:
        payload = base58.b58decode(parts[4])
    except ValueError as exc:
        raise MalformedDID(f"DID identifier is not valid base58: {parts[4]!r}") from exc
    if len(payload) != DID_PAYLOAD_LENGTH:
        raise InvalidEncodedLength(
            f"Unexpected decoded length {len(payload)}, must be {DID_PAYLOAD_LENGTH} bytes"
        )
    return payload


def eth_address_from_did(did: str, *, strict_checksum: bool = False) -> Optional[str]:
    """Recover the controlling Ethereum address from a did:iden3 DID.

    The embedded checksum is only compared when ``strict_checksum`` is set.

    Returns:
        Lowercase ``0x`` address, or None when the DID is not Ethereum-controlled

    Raises:
        MalformedDID: fewer than five ``:`` segments or non-base58 identifier
        InvalidEncodedLength: identifier does not decode to 31 bytes
        InvalidChecksum: checksum mismatch while ``strict_checksum`` is set
    """
    payload = decode_did_payload(did)

    if strict_checksum:
        expected = crc16_xmodem(payload[_CHECKSUMMED])
        found = int.from_bytes(payload[_CHECKSUMMED.stop:], "little")
        if expected != found:
            raise InvalidChecksum(f"Checksum mismatch: expected {expected:#06x}, found {found:#06x}")

    if any(payload[_PADDING]):
        logger.warning("DID %s is not Ethereum-controlled, genesis state is non-zero", did)
        return None

    return "0x" + payload[_ADDRESS].hex()


def is_ethereum_controlled(did: str) -> bool:
    """True when ``did`` decodes to an Ethereum address."""
    return eth_address_from_did(did) is not None
