"""Pydantic models for file transfer."""

import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class TransferState(str, Enum):
    """All possible states for a file transfer."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    TRANSFERRING = "transferring"
    COMPLETING = "completing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TransferDirection(str, Enum):
    SEND = "send"
    RECEIVE = "receive"


class FileInfo(BaseModel):
    """Metadata describing a local file as a sequence of chunks."""
    model_config = ConfigDict(frozen=True)

    filename: str
    size: int
    mime_type: str
    hash: str
    chunk_size: int
    total_chunks: int


class Chunk(BaseModel):
    """One slice of a file with the SHA-256 of its raw bytes."""
    model_config = ConfigDict(frozen=True)

    index: int
    data: bytes
    hash: str


class TransferInfo(BaseModel):
    """Full state of a single file transfer, tracked by both sides."""
    id: str
    direction: TransferDirection
    state: TransferState = TransferState.PENDING
    peer_id: str
    filename: str
    size: int
    mime_type: str
    hash: str
    chunk_size: int
    total_chunks: int
    # sender: indices acked by the peer; receiver: indices ingested
    received_chunks: set[int] = Field(default_factory=set)
    started_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)
    completed_at: int | None = None
    error: str | None = None
    local_path: str | None = None
    resumable: bool = False
    resume_from: int | None = None

    @property
    def progress_percent(self) -> int:
        if self.total_chunks == 0:
            return 100
        return 100 * len(self.received_chunks) // self.total_chunks

    def touch(self, now: int | None = None) -> None:
        self.updated_at = now if now is not None else now_ms()

    def snapshot(self) -> dict:
        """JSON-safe dump used for events and the API."""
        data = self.model_dump(mode="json")
        data["received_chunks"] = sorted(self.received_chunks)
        data["progress_percent"] = self.progress_percent
        return data


class TransferRequest(BaseModel):
    """API body for initiating a transfer."""
    peer_id: str
    file_path: str
