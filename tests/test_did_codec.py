import base58
import pytest

from zkred_agent_id.identity import (
    DIDCodecError,
    InvalidAddressLength,
    InvalidChecksum,
    InvalidEncodedLength,
    MalformedDID,
    eth_address_from_did,
    generate_did,
    is_ethereum_controlled,
)
from zkred_agent_id.identity.did_codec import DID_PAYLOAD_LENGTH, crc16_xmodem, decode_did_payload


def reference_crc16(data: bytes) -> int:
    crc = 0
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            crc = ((crc << 1) ^ 0x1021) if crc & 0x8000 else crc << 1
            crc &= 0xFFFF
    return crc


def _identifier(did: str) -> str:
    return did.split(":")[4]


def _reencode(did: str, payload: bytes) -> str:
    prefix = did.rsplit(":", 1)[0]
    return f"{prefix}:{base58.b58encode(payload).decode()}"


def test_crc16_xmodem_check_value():
    assert crc16_xmodem(b"123456789") == 0x31C3
    assert crc16_xmodem(b"") == 0


def test_generate_did_layout():
    address = "0x" + "00" * 19 + "01"
    did = generate_did(address, "polygon", "amoy")

    assert did.startswith("did:iden3:polygon:amoy:")
    payload = base58.b58decode(_identifier(did))
    assert len(payload) == DID_PAYLOAD_LENGTH
    assert payload[:2] == bytes([0x0D, 0x01])
    assert payload[2:9] == bytes(7)
    assert payload[9:29] == bytes(19) + b"\x01"
    assert payload[29:] == reference_crc16(payload[:29]).to_bytes(2, "little")


def test_generate_did_known_value():
    did = generate_did("0x" + "00" * 19 + "01", "polygon", "amoy")
    assert did == "did:iden3:polygon:amoy:CW3RbmkdMNjiTitejAGHxntVSRmwts5LpdLh3CpFcK"
    assert eth_address_from_did(did) == "0x" + "00" * 19 + "01"


@pytest.mark.parametrize(
    "address",
    [
        "0x1234567890abcdef1234567890abcdef12345678",
        "0xABCDEFabcdef0123456789ABCDEFabcdef012345",
        "ffffffffffffffffffffffffffffffffffffffff",
        "0x0000000000000000000000000000000000000000",
    ],
)
def test_round_trip_returns_lowercase_address(address):
    did = generate_did(address, "privado", "main")
    expected = address.lower() if address.startswith("0x") else "0x" + address.lower()

    assert eth_address_from_did(did) == expected
    assert eth_address_from_did(did, strict_checksum=True) == expected
    assert is_ethereum_controlled(did)


def test_labels_do_not_change_identifier():
    address = "0x1234567890abcdef1234567890abcdef12345678"
    first = generate_did(address, "privado", "main")
    second = generate_did(address, "polygon", "amoy")

    assert _identifier(first) == _identifier(second)
    assert first != second


def test_generate_did_is_deterministic():
    address = "0x1234567890abcdef1234567890abcdef12345678"
    assert generate_did(address, "privado", "main") == generate_did(address, "privado", "main")


@pytest.mark.parametrize(
    "address",
    [
        "0x" + "11" * 19,
        "0x" + "11" * 21,
        "0x",
        "0x" + "zz" * 20,
        "0x123",
    ],
)
def test_generate_did_rejects_bad_addresses(address):
    with pytest.raises(InvalidAddressLength):
        generate_did(address, "privado", "main")


def test_malformed_did():
    with pytest.raises(MalformedDID):
        eth_address_from_did("did:iden3:x:y")


def test_non_base58_identifier():
    with pytest.raises(MalformedDID):
        eth_address_from_did("did:iden3:privado:main:0OIl")


@pytest.mark.parametrize("length", [30, 32])
def test_wrong_payload_length(length):
    identifier = base58.b58encode(bytes([0x0D, 0x01]) + b"\x05" * (length - 2)).decode()
    with pytest.raises(InvalidEncodedLength):
        eth_address_from_did(f"did:iden3:privado:main:{identifier}")


def test_codec_errors_are_value_errors():
    with pytest.raises(ValueError):
        eth_address_from_did("not-a-did")
    assert issubclass(InvalidChecksum, DIDCodecError)


def test_non_zero_padding_is_not_ethereum_controlled():
    did = generate_did("0x1234567890abcdef1234567890abcdef12345678", "privado", "main")
    payload = bytearray(decode_did_payload(did))
    payload[4] = 0x01
    payload[29:] = reference_crc16(bytes(payload[:29])).to_bytes(2, "little")
    tampered = _reencode(did, bytes(payload))

    assert eth_address_from_did(tampered) is None
    assert not is_ethereum_controlled(tampered)


def test_checksum_ignored_unless_strict():
    address = "0x1234567890abcdef1234567890abcdef12345678"
    did = generate_did(address, "privado", "main")
    payload = bytearray(decode_did_payload(did))
    payload[29] ^= 0xFF
    tampered = _reencode(did, bytes(payload))

    assert eth_address_from_did(tampered) == address
    with pytest.raises(InvalidChecksum):
        eth_address_from_did(tampered, strict_checksum=True)
