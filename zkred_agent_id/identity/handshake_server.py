"""
FastAPI endpoints for the receiving side of the agent handshake

POST /initiate   issue a challenge for a new session
POST /callback   verify the signed challenge and report the outcome
"""

from typing import Union

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from .exceptions import HandshakeError, UnknownAgent
from .handshake import HANDSHAKE_COMPLETED, HANDSHAKE_FAILED, HandshakeResponder


class _SessionBody(BaseModel):
    session_id: Union[str, int] = Field(alias="sessionId")

    model_config = {"populate_by_name": True}

    @field_validator("session_id")
    @classmethod
    def _as_text(cls, value: Union[str, int]) -> str:
        return str(value)


class InitiateBody(_SessionBody):
    initiator_did: str = Field(alias="initiatorDid")
    initiator_chain_id: int = Field(alias="initiatorChainId")


class CallbackBody(_SessionBody):
    challenge: str
    signature: str


def create_handshake_router(responder: HandshakeResponder, prefix: str = "") -> APIRouter:
    """Expose ``responder`` as the /initiate and /callback endpoints of an agent."""
    router = APIRouter(prefix=prefix, tags=["handshake"])

    @router.post("/initiate")
    async def initiate(body: InitiateBody):
        try:
            challenge = await responder.issue_challenge(body.session_id, body.initiator_did, body.initiator_chain_id)
        except UnknownAgent as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except HandshakeError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return {"data": {"sessionId": body.session_id, "challenge": challenge}}

    @router.post("/callback")
    async def callback(body: CallbackBody):
        if not responder.complete(body.session_id, body.challenge, body.signature):
            return JSONResponse(
                status_code=401,
                content={"data": {"sessionId": body.session_id, "status": HANDSHAKE_FAILED}},
            )
        return {"data": {"sessionId": body.session_id, "status": HANDSHAKE_COMPLETED}}

    return router
