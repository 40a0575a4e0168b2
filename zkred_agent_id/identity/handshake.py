"""
Agent-to-agent challenge-response handshake

Initiator                                   Receiver
---------                                   --------
validate both agents on-chain
POST {endpoint}/initiate  --------------->  issue a fresh challenge
                          <---------------  {"data": {"challenge": ...}}
sign {"sessionId","challenge"}
POST {endpoint}/callback  --------------->  recover signer, compare with the
                          <---------------  address encoded in the initiator DID

Both sides sign and verify the same canonical message, produced by
``canonical_handshake_message``.
"""

import json
import logging
import secrets
import string
import threading
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from eth_account import Account
from eth_account.messages import encode_defunct

from .chains import ChainConfig
from .config import IdentitySettings
from .did_codec import eth_address_from_did
from .did_models import AgentRecord, HandshakeSession, HandshakeState
from .exceptions import DIDCodecError, HandshakeError, InvalidKeyFormat, UnknownAgent
from .keys import load_account
from .registry_client import AgentRegistryClient

logger = logging.getLogger(__name__)

HANDSHAKE_COMPLETED = "handshake_completed"
HANDSHAKE_FAILED = "handshake_failed"

_CHALLENGE_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits

_session_lock = threading.Lock()
_last_session_id = 0

RegistryClientFactory = Callable[[ChainConfig, Optional[str]], AgentRegistryClient]
InitiatorValidator = Callable[[str, int], Awaitable[Any]]


def generate_challenge(length: int = 10) -> str:
    """Unpredictable alphanumeric challenge"""
    if length <= 0:
        raise ValueError("Challenge length must be positive")
    return "".join(secrets.choice(_CHALLENGE_ALPHABET) for _ in range(length))


def new_session_id() -> str:
    """Millisecond timestamp, bumped so ids never repeat within the process"""
    global _last_session_id
    with _session_lock:
        candidate = time.time_ns() // 1_000_000
        if candidate <= _last_session_id:
            candidate = _last_session_id + 1
        _last_session_id = candidate
    return str(candidate)


def canonical_handshake_message(session_id: str, challenge: str) -> str:
    """Exact text signed by the initiator and verified by the receiver"""
    return json.dumps(
        {"sessionId": str(session_id), "challenge": challenge},
        separators=(",", ":"),
        ensure_ascii=False,
    )


def sign_handshake(private_key: str, session_id: str, challenge: str) -> str:
    """EIP-191 personal signature over the canonical handshake message"""
    account = load_account(private_key)
    message = encode_defunct(text=canonical_handshake_message(session_id, challenge))
    signature = account.sign_message(message).signature.hex()
    return signature if signature.startswith("0x") else f"0x{signature}"


def recover_handshake_signer(session_id: str, challenge: str, signature: str) -> str:
    message = encode_defunct(text=canonical_handshake_message(session_id, challenge))
    return Account.recover_message(message, signature=signature)


def verify_signature(session_id: str, challenge: str, signature: str, did: str) -> bool:
    """True iff ``signature`` over (session_id, challenge) was made by the DID's address.

    Non-Ethereum-controlled or malformed DIDs and unrecoverable signatures
    yield False.
    """
    try:
        expected = eth_address_from_did(did)
    except DIDCodecError as exc:
        logger.warning("Cannot verify handshake for %s: %s", did, exc)
        return False
    if expected is None:
        return False

    try:
        recovered = recover_handshake_signer(session_id, challenge, signature)
    except Exception as exc:
        logger.debug("Signature recovery failed for session %s: %s", session_id, exc)
        return False
    return recovered.lower() == expected.lower()


class HandshakeInitiator:
    """Initiator side of the handshake state machine"""

    def __init__(
        self,
        settings: Optional[IdentitySettings] = None,
        client_factory: Optional[RegistryClientFactory] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or IdentitySettings()
        self._client_factory = client_factory or self._default_client
        self._http_client = http_client

    def _default_client(self, chain: ChainConfig, private_key: Optional[str]) -> AgentRegistryClient:
        return AgentRegistryClient(
            chain,
            private_key=private_key,
            request_timeout=self.settings.rpc_timeout_seconds,
            receipt_timeout=self.settings.receipt_timeout_seconds,
        )

    async def validate_agent(self, did: str, chain_id: int, rpc_url: Optional[str] = None) -> AgentRecord:
        """Resolve the registry record behind ``did``.

        Raises:
            UnknownAgent: DID is not Ethereum-controlled or not registered
            RegistryError: the registry lookup failed
        """
        address = eth_address_from_did(did)
        if address is None:
            raise UnknownAgent(f"DID {did} is not Ethereum-controlled")

        client = self._client_factory(self.settings.chain(chain_id, rpc_url), None)
        try:
            record = await client.resolve_agent(address)
        finally:
            await client.close()

        if record is None:
            raise UnknownAgent(f"Agent {did} not found on chain {chain_id}")
        return record

    async def initiate(
        self,
        initiator_did: str,
        initiator_chain_id: int,
        receiver_did: str,
        receiver_chain_id: int,
        initiator_rpc_url: Optional[str] = None,
        receiver_rpc_url: Optional[str] = None,
    ) -> HandshakeSession:
        """Validate both agents and request a challenge from the receiver.

        Returns:
            Session awaiting the signed challenge response

        Raises:
            UnknownAgent: either agent is not registered
            HandshakeError: the receiver could not be reached or issued no challenge
        """
        await self.validate_agent(initiator_did, initiator_chain_id, initiator_rpc_url)
        receiver = await self.validate_agent(receiver_did, receiver_chain_id, receiver_rpc_url)

        session = HandshakeSession(
            session_id=new_session_id(),
            initiator_did=initiator_did,
            initiator_chain_id=initiator_chain_id,
            receiver_did=receiver_did,
            receiver_chain_id=receiver_chain_id,
        )
        endpoint = receiver.service_endpoint.rstrip("/")
        try:
            body = await self._post_json(
                f"{endpoint}/initiate",
                {
                    "sessionId": session.session_id,
                    "initiatorDid": initiator_did,
                    "initiatorChainId": initiator_chain_id,
                },
            )
        except (httpx.HTTPError, ValueError) as exc:
            raise HandshakeError(f"Receiver {receiver_did} rejected handshake initiation: {exc}") from exc

        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        challenge = data.get("challenge")
        if not challenge:
            raise HandshakeError(f"Receiver {receiver_did} did not issue a challenge")

        session.challenge = str(challenge)
        session.callback_endpoint = f"{endpoint}/callback"
        session.state = HandshakeState.AWAITING_CHALLENGE_RESPONSE
        logger.info("Handshake %s initiated with %s", session.session_id, receiver_did)
        return session

    async def complete(
        self,
        private_key: str,
        session_id: str,
        callback_endpoint: str,
        challenge: str,
    ) -> bool:
        """Answer the receiver's challenge; True only when it confirms completion."""
        try:
            signature = sign_handshake(private_key, session_id, challenge)
        except InvalidKeyFormat as exc:
            logger.warning("Handshake %s failed: %s", session_id, exc)
            return False

        try:
            body = await self._post_json(
                callback_endpoint,
                {"sessionId": session_id, "challenge": challenge, "signature": signature},
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Handshake %s failed: %s", session_id, exc)
            return False

        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        completed = str(data.get("sessionId")) == str(session_id) and data.get("status") == HANDSHAKE_COMPLETED
        if completed:
            logger.info("Handshake %s completed", session_id)
        else:
            logger.warning("Handshake %s rejected by receiver: %s", session_id, data.get("status"))
        return completed

    async def complete_session(self, private_key: str, session: HandshakeSession) -> bool:
        """``complete`` for a session returned by ``initiate``; records the terminal state."""
        if session.state != HandshakeState.AWAITING_CHALLENGE_RESPONSE:
            raise HandshakeError(f"Session {session.session_id} is {session.state.value}, not awaiting a response")
        completed = await self.complete(private_key, session.session_id, session.callback_endpoint, session.challenge)
        session.state = HandshakeState.COMPLETED if completed else HandshakeState.FAILED
        return completed

    async def _post_json(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self._http_client is not None:
            response = await self._http_client.post(url, json=payload)
        else:
            async with httpx.AsyncClient(timeout=self.settings.http_timeout_seconds) as client:
                response = await client.post(url, json=payload)
        response.raise_for_status()
        body = response.json()
        return body if isinstance(body, dict) else {}


class HandshakeResponder:
    """Receiver side: issues challenges and checks the signed answers.

    Pending sessions live in memory only and are consumed by the first
    callback, successful or not.
    """

    def __init__(
        self,
        did: str,
        chain_id: int,
        challenge_length: int = 10,
        challenge_ttl_seconds: float = 300.0,
        validate_initiator: Optional[InitiatorValidator] = None,
        max_pending: int = 1024,
    ):
        self.did = did
        self.chain_id = chain_id
        self.challenge_length = challenge_length
        self.challenge_ttl_seconds = challenge_ttl_seconds
        self._validate_initiator = validate_initiator
        self.max_pending = max_pending
        self._sessions: Dict[str, HandshakeSession] = {}
        self._issued_at: Dict[str, float] = {}

    def pending(self, session_id: str) -> Optional[HandshakeSession]:
        return self._sessions.get(str(session_id))

    async def issue_challenge(self, session_id: str, initiator_did: str, initiator_chain_id: int) -> str:
        """Create a fresh challenge for ``session_id``.

        Raises:
            UnknownAgent: the optional initiator validator rejected the initiator
            HandshakeError: the session id is already in use, or too many
                challenges are pending
        """
        session_id = str(session_id)
        self._prune_expired()
        if session_id in self._sessions:
            raise HandshakeError(f"Session {session_id} already has a pending challenge")
        if len(self._sessions) >= self.max_pending:
            raise HandshakeError(f"Too many pending handshakes ({self.max_pending})")
        if self._validate_initiator is not None:
            await self._validate_initiator(initiator_did, initiator_chain_id)
            if session_id in self._sessions:
                raise HandshakeError(f"Session {session_id} already has a pending challenge")

        challenge = generate_challenge(self.challenge_length)
        self._sessions[session_id] = HandshakeSession(
            session_id=session_id,
            initiator_did=initiator_did,
            initiator_chain_id=initiator_chain_id,
            receiver_did=self.did,
            receiver_chain_id=self.chain_id,
            challenge=challenge,
            state=HandshakeState.AWAITING_CHALLENGE_RESPONSE,
        )
        self._issued_at[session_id] = time.monotonic()
        return challenge

    def _prune_expired(self) -> None:
        cutoff = time.monotonic() - self.challenge_ttl_seconds
        expired = [sid for sid, issued_at in self._issued_at.items() if issued_at < cutoff]
        for sid in expired:
            self._sessions.pop(sid, None)
            self._issued_at.pop(sid, None)
        if expired:
            logger.debug("Dropped %d expired handshake challenges", len(expired))

    def complete(self, session_id: str, challenge: str, signature: str) -> bool:
        session_id = str(session_id)
        session = self._sessions.pop(session_id, None)
        issued_at = self._issued_at.pop(session_id, None)
        if session is None:
            logger.warning("Callback for unknown handshake session %s", session_id)
            return False

        if time.monotonic() - issued_at > self.challenge_ttl_seconds:
            logger.warning("Challenge for session %s expired", session_id)
            return False
        if not secrets.compare_digest(session.challenge.encode(), str(challenge).encode()):
            logger.warning("Challenge mismatch for session %s", session_id)
            return False

        completed = verify_signature(session_id, challenge, signature, session.initiator_did)
        logger.info("Handshake %s from %s %s", session_id, session.initiator_did,
                    "completed" if completed else "rejected")
        return completed
