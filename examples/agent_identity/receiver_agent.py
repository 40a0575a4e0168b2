"""
Handshake receiver agent
========================

Serves the /initiate and /callback handshake endpoints for an agent that is
already registered in the AgentRegistry. Initiators are looked up on-chain
before a challenge is issued.

Usage:
    python -m examples.agent_identity.receiver_agent --chain-id 80002 --port 8010

Environment variables:
    RECEIVER_PRIVATE_KEY     Key of the receiving agent (used to derive its DID)
    AGENT_ID_CONFIG          Optional config.json path (identity / x402 sections)
"""

import argparse
import logging
import os

import uvicorn
from dotenv import load_dotenv
from eth_account import Account
from fastapi import FastAPI

from zkred_agent_id.identity import HandshakeInitiator, HandshakeResponder, IdentitySettings, generate_did
from zkred_agent_id.identity.handshake_server import create_handshake_router

logger = logging.getLogger(__name__)


def build_app(private_key: str, chain_id: int, settings: IdentitySettings) -> FastAPI:
    address = Account.from_key(private_key).address
    did = generate_did(address, settings.did_chain, settings.did_network)
    validator = HandshakeInitiator(settings)
    responder = HandshakeResponder(did, chain_id, validate_initiator=validator.validate_agent)

    app = FastAPI(title="Agent handshake receiver", docs_url=None, redoc_url=None)
    app.include_router(create_handshake_router(responder))
    logger.info("Serving handshakes for %s on chain %s", did, chain_id)
    return app


def main() -> None:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Serve the agent handshake endpoints")
    parser.add_argument("--private-key", default=os.getenv("RECEIVER_PRIVATE_KEY"))
    parser.add_argument("--chain-id", type=int, default=80002)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8010)
    args = parser.parse_args()
    if not args.private_key:
        parser.error("--private-key or RECEIVER_PRIVATE_KEY is required")

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    app = build_app(args.private_key, args.chain_id, IdentitySettings.load())
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
