"""Shared fixtures: two in-process nodes talking over an in-memory chat channel."""

import os
from collections import defaultdict, deque
from pathlib import Path

import pytest

from config import NodeConfig
from peers.models import TrustedPeer
from transfer.engine import TransferEngine
from transfer.protocol import OCFTMessage, build_message, decode_from_transport, encode_for_transport

ALICE = "ocft_alice"
BOB = "ocft_bob"
ALICE_SECRET = "secret-a-12345"
BOB_SECRET = "secret-b-67890"


class ChatNetwork:
    """
    Lossless chat channel between engines in one process.

    Every sent text is queued for its recipient and only delivered by
    ``pump``, so no engine is re-entered while it handles a message.
    """

    def __init__(self) -> None:
        self.engines: dict[str, TransferEngine] = {}
        self.queues: dict[str, deque] = defaultdict(deque)
        self.sent: list[tuple[str, str, str]] = []
        self.tamper = None  # optional fn(sender, recipient, text) -> text

    def sender_for(self, node_id: str):
        async def send_text(peer_id: str, text: str) -> None:
            if self.tamper is not None:
                text = self.tamper(node_id, peer_id, text)
            self.sent.append((node_id, peer_id, text))
            self.queues[peer_id].append((node_id, text))
        return send_text

    def add(self, config: NodeConfig, **kwargs) -> TransferEngine:
        engine = TransferEngine(config, self.sender_for(config.node_id), **kwargs)
        self.engines[config.node_id] = engine
        return engine

    async def pump(self, max_steps: int = 10_000) -> int:
        """Deliver queued messages until the channel is idle or ``max_steps`` ran."""
        steps = 0
        while steps < max_steps:
            ready = [nid for nid, q in self.queues.items() if q and nid in self.engines]
            if not ready:
                break
            for nid in ready:
                if steps >= max_steps:
                    break
                sender, text = self.queues[nid].popleft()
                await self.engines[nid].handle_message(sender, text)
                steps += 1
        return steps

    def drop_all(self) -> None:
        for q in self.queues.values():
            q.clear()

    def messages(self, sender: str | None = None, recipient: str | None = None) -> list[OCFTMessage]:
        return [
            decode_from_transport(text)
            for frm, to, text in self.sent
            if (sender is None or frm == sender) and (recipient is None or to == recipient)
        ]


class EventLog:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    async def __call__(self, event: str, data: dict) -> None:
        self.events.append((event, data))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def of(self, name: str) -> list[dict]:
        return [data for event, data in self.events if event == name]


def wire(msg_type, transfer_id, sender, recipient, payload) -> str:
    """Encode a hand-built message the way a peer would send it."""
    return encode_for_transport(build_message(msg_type, transfer_id, sender, recipient, payload))


@pytest.fixture
def network() -> ChatNetwork:
    return ChatNetwork()


@pytest.fixture
def make_file(tmp_path: Path):
    def _make(name: str = "test.txt", size: int = 2500, content: bytes | None = None) -> Path:
        path = tmp_path / "outgoing" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        if content is None:
            content = os.urandom(size)
        path.write_bytes(content)
        return path
    return _make


@pytest.fixture
def alice_config(tmp_path: Path) -> NodeConfig:
    """Sender that holds Bob's secret."""
    return NodeConfig(
        node_id=ALICE,
        secret=ALICE_SECRET,
        download_dir=str(tmp_path / "alice"),
        chunk_size=1024,
        trusted_peers=[TrustedPeer(id=BOB, secret=BOB_SECRET)],
    )


@pytest.fixture
def bob_config(tmp_path: Path) -> NodeConfig:
    """Receiver with its own secret and no trusted peers."""
    return NodeConfig(
        node_id=BOB,
        secret=BOB_SECRET,
        download_dir=str(tmp_path / "bob"),
        chunk_size=1024,
    )
