"""
Agent identity data models
Registry records, registration results and handshake sessions
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AgentRecord(BaseModel):
    """Agent entry as stored in the on-chain AgentRegistry"""
    did: str = Field(..., description="did:iden3 identifier of the agent")
    agent_id: int = Field(..., alias="agentId", description="Registry-assigned agent id")
    description: str = Field("", description="Human-readable description")
    service_endpoint: str = Field("", alias="serviceEndpoint", description="Base URL of the agent")

    class Config:
        populate_by_name = True


class RegistrationReceipt(BaseModel):
    """Outcome of a registerAgent transaction"""
    transaction_hash: str = Field(..., alias="transactionHash")
    block_number: Optional[int] = Field(None, alias="blockNumber")
    agent_id: Optional[int] = Field(None, alias="agentId", description="Agent id, when already readable")

    class Config:
        populate_by_name = True


class RegistrationResult(BaseModel):
    """Confirmed agent registration"""
    transaction_hash: Optional[str] = Field(None, alias="txHash")
    did: str
    description: str
    service_endpoint: str = Field(..., alias="serviceEndpoint")
    agent_id: Optional[int] = Field(None, alias="agentId")

    class Config:
        populate_by_name = True


class RegistrationRequest(BaseModel):
    """Fee-delegated registration request signed with EIP-712"""
    agent: str = Field(..., description="Lowercase address of the registering agent")
    did: str
    description: str
    service_endpoint: str = Field(..., alias="serviceEndpoint")
    nonce: int = Field(..., ge=0, description="Registry nonce of the agent address")
    expiry: int = Field(..., description="Unix timestamp after which the request is void")

    class Config:
        populate_by_name = True

    def to_typed_message(self) -> Dict[str, Any]:
        """Message data for typed-data signing"""
        return {
            "agent": self.agent,
            "did": self.did,
            "description": self.description,
            "serviceEndpoint": self.service_endpoint,
            "nonce": self.nonce,
            "expiry": self.expiry,
        }


class HandshakeState(str, Enum):
    """Initiator-side handshake states"""
    IDLE = "idle"
    AWAITING_CHALLENGE_RESPONSE = "awaiting_challenge_response"
    COMPLETED = "completed"
    FAILED = "failed"


class HandshakeSession(BaseModel):
    """In-flight handshake between an initiator and a receiver agent"""
    session_id: str = Field(..., alias="sessionId")
    initiator_did: str = Field(..., alias="initiatorDid")
    initiator_chain_id: int = Field(..., alias="initiatorChainId")
    receiver_did: str = Field(..., alias="receiverDid")
    receiver_chain_id: int = Field(..., alias="receiverChainId")
    challenge: Optional[str] = None
    callback_endpoint: Optional[str] = Field(None, alias="receiverAgentCallbackEndPoint")
    state: HandshakeState = HandshakeState.IDLE

    class Config:
        populate_by_name = True

    @property
    def is_terminal(self) -> bool:
        return self.state in (HandshakeState.COMPLETED, HandshakeState.FAILED)
