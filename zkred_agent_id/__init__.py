from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version as _dist_version


def _resolve_version() -> str:
    try:
        return _dist_version("zkred-agent-id")
    except PackageNotFoundError:
        return "0.0.0"


__version__: str = _resolve_version()

from zkred_agent_id.identity import (  # noqa: E402
    AgentRegistrar,
    HandshakeInitiator,
    HandshakeResponder,
    IdentitySettings,
    eth_address_from_did,
    generate_did,
    generate_private_key,
    verify_signature,
)

__all__ = [
    "__version__",
    "AgentRegistrar",
    "HandshakeInitiator",
    "HandshakeResponder",
    "IdentitySettings",
    "eth_address_from_did",
    "generate_did",
    "generate_private_key",
    "verify_signature",
]
