"""Private key helpers shared by registration and handshake signing."""

import re

from eth_account import Account
from eth_account.signers.local import LocalAccount

from .exceptions import InvalidKeyFormat

_PRIVATE_KEY_PATTERN = re.compile(r"0x[0-9a-fA-F]{64}")


def generate_private_key() -> str:
    """Fresh random secp256k1 private key as 0x-prefixed hex."""
    key = Account.create().key.hex()
    return key if key.startswith("0x") else f"0x{key}"


def load_account(private_key: str) -> LocalAccount:
    """Validate key material and return the local signing account.

    Raises:
        InvalidKeyFormat: key is not 0x + 64 hex characters, or not a valid secp256k1 scalar
    """
    if not isinstance(private_key, str) or not _PRIVATE_KEY_PATTERN.fullmatch(private_key):
        raise InvalidKeyFormat("Private key must be a 0x-prefixed 64-hex string")
    try:
        return Account.from_key(private_key)
    except Exception as exc:
        raise InvalidKeyFormat(f"Private key is not a valid secp256k1 key: {exc}") from exc
