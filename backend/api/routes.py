"""REST API routes for the OCFT node."""

import logging
import os

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from api.websocket import ConnectionManager
from peers.trust import export_uri, import_uri
from transfer.engine import TransferEngine
from transfer.errors import InvalidStateTransition, TransferNotFound
from transfer.models import TransferRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# These will be injected by main.py at startup
_engine: TransferEngine | None = None
_ws_manager: ConnectionManager | None = None


def init_routes(engine: TransferEngine, ws_manager: ConnectionManager) -> None:
    """Inject service dependencies into the routes module."""
    global _engine, _ws_manager
    _engine = engine
    _ws_manager = ws_manager


def _transfer_or_404(transfer_id: str):
    info = _engine.get_transfer(transfer_id)
    if info is None:
        raise HTTPException(status_code=404, detail="Transfer not found")
    return info


async def _run(operation, *args):
    try:
        return await operation(*args)
    except TransferNotFound:
        raise HTTPException(status_code=404, detail="Transfer not found")
    except InvalidStateTransition as e:
        raise HTTPException(status_code=409, detail=str(e))


# --- Node ---

@router.get("/node")
async def node_info():
    return {
        "node_id": _engine.node_id,
        "share_uri": export_uri(_engine.node_id, _engine.config.secret),
    }


# --- Inbound chat traffic ---

class IncomingMessageBody(BaseModel):
    from_peer: str
    text: str


@router.post("/messages")
async def incoming_message(body: IncomingMessageBody):
    """Hand one chat message to the engine; ordinary chat is reported as unhandled."""
    handled = await _engine.handle_message(body.from_peer, body.text)
    return {"handled": handled}


@router.get("/outbox")
async def outbox():
    """Messages produced while no bridge was connected."""
    return {"messages": _ws_manager.drain_outbox()}


# --- Transfers ---

@router.get("/transfers")
async def list_transfers():
    """Return all transfers (active + finished)."""
    return {"transfers": [t.snapshot() for t in _engine.list_transfers()]}


@router.get("/transfers/resumable")
async def resumable_transfers():
    return {"transfers": [t.snapshot() for t in _engine.get_resumable_transfers()]}


@router.get("/transfers/{transfer_id}")
async def get_transfer(transfer_id: str):
    return _transfer_or_404(transfer_id).snapshot()


@router.post("/transfers")
async def create_transfer(body: TransferRequest):
    """Offer a local file (absolute path on this host) to a peer."""
    if not os.path.isfile(body.file_path):
        raise HTTPException(status_code=400, detail="File not found")
    try:
        transfer_id = await _engine.send_file(body.peer_id, body.file_path)
    except OSError as e:
        raise HTTPException(status_code=400, detail=f"Cannot read file: {e}")
    return _engine.get_transfer(transfer_id).snapshot()


class AcceptBody(BaseModel):
    resume_from: int | None = None


class RejectBody(BaseModel):
    reason: str = "Rejected by user"


@router.post("/transfers/{transfer_id}/accept")
async def accept_transfer(transfer_id: str, body: AcceptBody | None = None):
    await _run(_engine.accept_transfer, transfer_id, body.resume_from if body else None)
    return {"status": "accepted"}


@router.post("/transfers/{transfer_id}/reject")
async def reject_transfer(transfer_id: str, body: RejectBody | None = None):
    await _run(_engine.reject_transfer, transfer_id, (body or RejectBody()).reason)
    return {"status": "rejected"}


@router.post("/transfers/{transfer_id}/resume")
async def resume_transfer(transfer_id: str):
    resume_from = await _run(_engine.resume_transfer, transfer_id)
    return {"status": "resumed", "resume_from": resume_from}


@router.post("/transfers/{transfer_id}/cancel")
async def cancel_transfer(transfer_id: str):
    await _run(_engine.cancel_transfer, transfer_id)
    return {"status": "cancelled"}


# --- Trusted peers ---

class PeerBody(BaseModel):
    id: str | None = None
    secret: str | None = None
    uri: str | None = None
    name: str | None = None
    expires_at: int | None = None


@router.get("/peers")
async def list_peers():
    """Trusted peers; secrets are never returned."""
    return {
        "peers": [
            p.model_dump(exclude={"secret"}) for p in _engine.trust_store.list_peers()
        ]
    }


@router.post("/peers")
async def add_peer(body: PeerBody):
    """Trust a peer given its id and secret, or an ocft:// share URI."""
    peer_id, secret = body.id, body.secret
    if body.uri:
        try:
            peer_id, secret = import_uri(body.uri)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    if not peer_id or not secret:
        raise HTTPException(status_code=400, detail="Peer id and secret are required")

    peer = _engine.trust_store.add_peer(peer_id, secret, body.name, body.expires_at)
    return peer.model_dump(exclude={"secret"})


@router.delete("/peers/{peer_id}")
async def remove_peer(peer_id: str):
    peer = _engine.trust_store.remove_peer(peer_id)
    if peer is None:
        raise HTTPException(status_code=404, detail="Peer not found")
    return {"status": "removed", "id": peer.id}
