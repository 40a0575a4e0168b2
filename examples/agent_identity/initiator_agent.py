"""
Handshake initiator agent
=========================

Registers the initiating agent when it is not yet known to the registry,
then proves control of its DID to a receiver agent.

Usage:
    python -m examples.agent_identity.initiator_agent \
        --receiver-did did:iden3:privado:main:... --receiver-chain-id 80002

    # pay the registration through the x402 settlement service instead of gas
    python -m examples.agent_identity.initiator_agent --delegated ...

Environment variables:
    INITIATOR_PRIVATE_KEY    Key of the initiating agent (a fresh one is generated when absent)
    INITIATOR_ENDPOINT       Public base URL of the initiating agent
    X402_API_URL             Settlement service (default: http://localhost:4020)
"""

import argparse
import asyncio
import json
import logging
import os

from dotenv import load_dotenv
from eth_account import Account

from zkred_agent_id.identity import (
    AgentRegistrar,
    AlreadyRegistered,
    HandshakeInitiator,
    IdentitySettings,
    generate_private_key,
)


async def run(args: argparse.Namespace) -> None:
    settings = IdentitySettings.load()
    registrar = AgentRegistrar(settings)

    private_key = args.private_key
    if not private_key:
        private_key = generate_private_key()
        print("Generated a new agent key, fund it before registering directly.")

    register = registrar.register_via_delegated_payment if args.delegated else registrar.register
    try:
        result = await register(private_key, args.description, args.chain_id, args.endpoint)
        print(json.dumps(result.model_dump(by_alias=True), indent=2))
        initiator_did = result.did
    except AlreadyRegistered:
        initiator_did = registrar.derive_did(Account.from_key(private_key).address)
        print(f"Already registered as {initiator_did}")

    if not args.receiver_did:
        return

    initiator = HandshakeInitiator(settings)
    session = await initiator.initiate(initiator_did, args.chain_id, args.receiver_did, args.receiver_chain_id)
    completed = await initiator.complete_session(private_key, session)
    print(f"Handshake {session.session_id}: {session.state.value}")
    if not completed:
        raise SystemExit(1)


def main() -> None:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Register an agent and run a DID handshake")
    parser.add_argument("--private-key", default=os.getenv("INITIATOR_PRIVATE_KEY"))
    parser.add_argument("--chain-id", type=int, default=80002)
    parser.add_argument("--description", default="Example initiator agent")
    parser.add_argument("--endpoint", default=os.getenv("INITIATOR_ENDPOINT", "http://127.0.0.1:8011"))
    parser.add_argument("--delegated", action="store_true", help="Register through the x402 settlement service")
    parser.add_argument("--receiver-did")
    parser.add_argument("--receiver-chain-id", type=int, default=80002)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
