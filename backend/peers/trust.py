"""Trust store for peers whose secrets we know."""

import base64
import binascii
import json
import logging
from pathlib import Path
from typing import Iterable, Optional

from pydantic import ValidationError

from peers.models import TrustedPeer
from transfer.models import now_ms

logger = logging.getLogger(__name__)

SHARE_URI_SCHEME = "ocft://"


class TrustStore:
    """
    Resolves trusted peers by id, optionally persisted as JSON.

    Without a path the store lives only in memory, which is what the
    engine tests use to run two nodes in one process.
    """

    def __init__(
        self,
        peers: Iterable[TrustedPeer] = (),
        store_path: Path | None = None,
    ) -> None:
        self._store_path = store_path
        self._peers: dict[str, TrustedPeer] = {p.id: p for p in peers}
        self._load()

    def _load(self) -> None:
        if not self._store_path or not self._store_path.exists():
            return

        try:
            data = json.loads(self._store_path.read_text())
            for peer_data in data:
                peer = TrustedPeer.model_validate(peer_data)
                self._peers[peer.id] = peer
            logger.info(f"Loaded {len(self._peers)} trusted peers.")
        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.error(f"Failed to load trusted peers: {e}")

    def _save(self) -> None:
        if not self._store_path:
            return
        try:
            self._store_path.parent.mkdir(parents=True, exist_ok=True)
            data = [
                peer.model_dump(by_alias=True, exclude_none=True)
                for peer in self._peers.values()
            ]
            self._store_path.write_text(json.dumps(data, indent=2))
        except OSError as e:
            logger.error(f"Failed to save trusted peers: {e}")

    def add_peer(
        self,
        peer_id: str,
        secret: str,
        name: str | None = None,
        expires_at: int | None = None,
    ) -> TrustedPeer:
        """Add or replace a trusted peer."""
        peer = TrustedPeer(id=peer_id, secret=secret, name=name, expires_at=expires_at)
        self._peers[peer_id] = peer
        self._save()
        logger.info(f"Added trusted peer: {peer.label}")
        return peer

    def remove_peer(self, peer_id_or_name: str) -> Optional[TrustedPeer]:
        """Remove a peer by id, falling back to a name match."""
        peer = self._peers.pop(peer_id_or_name, None)
        if peer is None:
            match = next(
                (p for p in self._peers.values() if p.name == peer_id_or_name),
                None,
            )
            if match is not None:
                peer = self._peers.pop(match.id)
        if peer is not None:
            self._save()
            logger.info(f"Removed trusted peer: {peer.label}")
        return peer

    def get(self, peer_id: str) -> Optional[TrustedPeer]:
        return self._peers.get(peer_id)

    def list_peers(self) -> list[TrustedPeer]:
        return list(self._peers.values())

    def secret_for(self, peer_id: str) -> Optional[str]:
        """The secret to present when offering a file to ``peer_id``."""
        peer = self._peers.get(peer_id)
        return peer.secret if peer else None

    @staticmethod
    def is_trust_valid(peer: TrustedPeer, now: int | None = None) -> bool:
        if peer.expires_at is None:
            return True
        return (now if now is not None else now_ms()) < peer.expires_at

    def find_trusted(self, peer_id: str, now: int | None = None) -> Optional[TrustedPeer]:
        """Return the peer only if it is known and its trust has not expired."""
        peer = self._peers.get(peer_id)
        if peer and self.is_trust_valid(peer, now):
            return peer
        return None


def export_uri(node_id: str, secret: str) -> str:
    """Encode connection info for sharing with a peer."""
    payload = json.dumps({"nodeId": node_id, "secret": secret}).encode("utf-8")
    return SHARE_URI_SCHEME + base64.urlsafe_b64encode(payload).decode("ascii").rstrip("=")


def import_uri(uri: str) -> tuple[str, str]:
    """
    Decode an ``ocft://`` share URI into ``(node_id, secret)``.

    Raises:
        ValueError: the URI is not a valid share URI.
    """
    encoded = uri.strip().removeprefix(SHARE_URI_SCHEME)
    encoded += "=" * (-len(encoded) % 4)
    try:
        decoded = json.loads(base64.urlsafe_b64decode(encoded))
    except (binascii.Error, ValueError) as e:
        raise ValueError("Invalid OCFT URI") from e
    if not isinstance(decoded, dict) or not decoded.get("nodeId") or not decoded.get("secret"):
        raise ValueError("Invalid OCFT URI")
    return decoded["nodeId"], decoded["secret"]
