"""
Transfer engine: drives every file transfer of one node.

Owns the per-transfer state machine, validates incoming protocol messages
against it, decides auto-acceptance from the trust settings and emits
the next outgoing message through the host's ``send_text`` callable.

Flow control is stop-and-wait: the sender keeps exactly one chunk in
flight and only moves to the next index once the current one is acked.
A nack resends the same index.

The engine never retries a send and runs no timers; every transition is
driven by an incoming message or a local call. ``send_text`` must not
deliver back into this engine synchronously, since handling holds the
transfer's lock.
"""

import asyncio
import logging
import uuid
from collections import deque
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Awaitable, Callable

from config import NodeConfig
from peers.trust import TrustStore
from security.crypto import secrets_match
from transfer.chunker import ChunkAssembler, chunk_count, describe, read_chunk
from transfer.errors import (
    FileHashMismatchError,
    InvalidStateTransition,
    MissingChunksError,
    TransferNotFound,
)
from transfer.models import TransferDirection, TransferInfo, TransferState, now_ms
from transfer.protocol import (
    FINAL_ACK_INDEX,
    AcceptPayload,
    AckPayload,
    ChunkPayload,
    CompletePayload,
    ErrorPayload,
    MessageType,
    OCFTMessage,
    OfferPayload,
    Payload,
    RejectPayload,
    build_message,
    decode_chunk_data,
    decode_from_transport,
    encode_chunk_data,
    encode_for_transport,
    is_protocol_text,
)

logger = logging.getLogger(__name__)

SendTextFn = Callable[[str, str], Awaitable[None]]
EventCallback = Callable[[str, dict], Awaitable[None]]

# states a transfer never leaves through protocol traffic or resume
_FINAL_STATES = (
    TransferState.COMPLETED,
    TransferState.REJECTED,
    TransferState.CANCELLED,
)
_RECEIVING_STATES = (TransferState.ACCEPTED, TransferState.TRANSFERRING)


def safe_filename(filename: str) -> str:
    """Strip any directory part a peer put in an offered filename."""
    name = Path(filename.replace("\\", "/")).name.strip()
    if name in ("", ".", ".."):
        return "file"
    return name


class TransferEngine:
    """Manages all outgoing and incoming transfers for one node."""

    def __init__(
        self,
        config: NodeConfig,
        send_text: SendTextFn,
        trust_store: TrustStore | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._config = config
        self._send_text = send_text
        self._trust_store = trust_store or TrustStore(config.trusted_peers)
        self._clock = clock
        self._transfers: dict[str, TransferInfo] = {}
        self._assemblers: dict[str, ChunkAssembler] = {}
        self._in_flight: dict[str, int] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._event_callbacks: list[EventCallback] = []
        self._pending_events: deque[tuple[str, dict]] = deque()
        self._handlers = {
            MessageType.OFFER: self._on_offer,
            MessageType.ACCEPT: self._on_accept,
            MessageType.REJECT: self._on_reject,
            MessageType.CHUNK: self._on_chunk,
            MessageType.ACK: self._on_ack,
            MessageType.COMPLETE: self._on_complete,
            MessageType.ERROR: self._on_error,
        }

    @property
    def node_id(self) -> str:
        return self._config.node_id

    @property
    def config(self) -> NodeConfig:
        return self._config

    @property
    def trust_store(self) -> TrustStore:
        return self._trust_store

    def on_event(self, callback: EventCallback) -> None:
        """Register callback: async fn(event_type: str, data: dict)."""
        self._event_callbacks.append(callback)

    def _emit(self, event_type: str, info: TransferInfo, **details) -> None:
        """Queue an event; it is delivered once the transfer's lock is released."""
        data = info.snapshot()
        data.update(details)
        self._pending_events.append((event_type, data))

    async def _deliver_events(self) -> None:
        """Run callbacks for queued events. Must be called without holding a transfer lock."""
        while self._pending_events:
            event_type, data = self._pending_events.popleft()
            for cb in self._event_callbacks:
                try:
                    await cb(event_type, data)
                except Exception as e:
                    logger.error(f"Event callback error on {event_type}: {e}")

    def _lock_for(self, transfer_id: str) -> asyncio.Lock:
        """Lock of a tracked transfer, or of an offer about to become one."""
        return self._locks.setdefault(transfer_id, asyncio.Lock())

    @asynccontextmanager
    async def _locked(self, transfer_id: str):
        """Hold the transfer's lock; events queued meanwhile are delivered after release."""
        try:
            async with self._lock_for(transfer_id):
                yield
        finally:
            await self._deliver_events()

    # --- Queries ---

    def get_transfer(self, transfer_id: str) -> TransferInfo | None:
        return self._transfers.get(transfer_id)

    def list_transfers(self) -> list[TransferInfo]:
        return list(self._transfers.values())

    def get_resumable_transfers(self) -> list[TransferInfo]:
        return [
            t for t in self._transfers.values()
            if t.resumable
            and t.state not in _FINAL_STATES
            and t.received_chunks
        ]

    def _require(self, transfer_id: str) -> TransferInfo:
        info = self._transfers.get(transfer_id)
        if info is None:
            raise TransferNotFound(transfer_id)
        return info

    # --- Local operations ---

    async def send_file(self, peer_id: str, file_path: str) -> str:
        """
        Offer a local file to a peer.

        Returns the new transfer id as soon as the offer has been handed
        to the transport; progress is driven by the peer's replies.

        Raises:
            OSError: the file cannot be read.
        """
        file_info = await asyncio.to_thread(describe, file_path, self._config.chunk_size)
        transfer_id = f"xfer_{uuid.uuid4().hex[:12]}"
        now = self._clock()

        info = TransferInfo(
            id=transfer_id,
            direction=TransferDirection.SEND,
            peer_id=peer_id,
            filename=file_info.filename,
            size=file_info.size,
            mime_type=file_info.mime_type,
            hash=file_info.hash,
            chunk_size=file_info.chunk_size,
            total_chunks=file_info.total_chunks,
            started_at=now,
            updated_at=now,
            local_path=str(file_path),
        )

        self._transfers[transfer_id] = info
        async with self._locked(transfer_id):
            await self._send(peer_id, self._offer_message(info))
            logger.info(
                f"Offered {info.filename} ({info.size} bytes, "
                f"{info.total_chunks} chunks) to {peer_id} as {transfer_id}"
            )
            self._emit("offer-sent", info)

        return transfer_id

    async def accept_transfer(self, transfer_id: str, resume_from: int | None = None) -> None:
        """Accept a pending incoming transfer."""
        self._require(transfer_id)
        async with self._locked(transfer_id):
            await self._accept(self._require(transfer_id), resume_from)

    async def reject_transfer(self, transfer_id: str, reason: str) -> None:
        """Reject a pending incoming transfer."""
        self._require(transfer_id)
        async with self._locked(transfer_id):
            info = self._require(transfer_id)
            if info.direction != TransferDirection.RECEIVE or info.state != TransferState.PENDING:
                raise InvalidStateTransition(transfer_id, info.state.value, "reject")

            info.state = TransferState.REJECTED
            info.error = reason
            info.touch(self._clock())
            self._assemblers.pop(transfer_id, None)

            await self._send(info.peer_id, self._message(
                MessageType.REJECT, info, RejectPayload(reason=reason)
            ))
            logger.info(f"Rejected transfer {transfer_id}: {reason}")
            self._emit("transfer-rejected", info)

    async def cancel_transfer(self, transfer_id: str, reason: str = "Cancelled by user") -> None:
        """
        Abandon a transfer on behalf of the host.

        The peer is told through an ``error`` message; any later protocol
        traffic for the transfer is ignored.
        """
        self._require(transfer_id)
        async with self._locked(transfer_id):
            info = self._require(transfer_id)
            if info.state in _FINAL_STATES:
                raise InvalidStateTransition(transfer_id, info.state.value, "cancel")

            info.state = TransferState.CANCELLED
            info.error = reason
            info.touch(self._clock())
            self._assemblers.pop(transfer_id, None)
            self._in_flight.pop(transfer_id, None)

            await self._send(info.peer_id, self._message(
                MessageType.ERROR,
                info,
                ErrorPayload(code="CANCELLED", message=reason, recoverable=False),
            ))
            logger.info(f"Cancelled transfer {transfer_id}")
            self._emit("transfer-cancelled", info)

    async def resume_transfer(self, transfer_id: str) -> int:
        """
        Restart an interrupted transfer after the highest exchanged chunk.

        The receiver re-accepts from that index; the sender re-sends its
        offer carrying it, since it cannot continue without the receiver's
        acknowledgement. Returns the resume index.
        """
        self._require(transfer_id)
        async with self._locked(transfer_id):
            info = self._require(transfer_id)
            if info.state in _FINAL_STATES:
                raise InvalidStateTransition(transfer_id, info.state.value, "resume")

            resume_from = max(info.received_chunks, default=-1) + 1
            info.state = TransferState.PENDING
            info.error = None

            if info.direction == TransferDirection.RECEIVE:
                await self._accept(info, resume_from)
            else:
                self._in_flight.pop(transfer_id, None)
                info.touch(self._clock())
                await self._send(info.peer_id, self._offer_message(info, resume_from))

            logger.info(f"Resuming transfer {transfer_id} from chunk {resume_from}")
            self._emit("transfer-resumed", info, resume_from=resume_from)
            return resume_from

    async def _accept(self, info: TransferInfo, resume_from: int | None) -> None:
        if info.direction != TransferDirection.RECEIVE or info.state != TransferState.PENDING:
            raise InvalidStateTransition(info.id, info.state.value, "accept")

        if resume_from is None:
            resume_from = info.resume_from

        output_path = Path(self._config.download_dir) / safe_filename(info.filename)
        assembler = self._assemblers.get(info.id)
        if (
            assembler is None
            or assembler.expected_hash != info.hash
            or assembler.total_chunks != info.total_chunks
        ):
            assembler = ChunkAssembler(output_path, info.hash, info.total_chunks)
            self._assemblers[info.id] = assembler
        else:
            # chunks verified during an earlier attempt stay usable
            assembler.output_path = output_path
        info.received_chunks = set(assembler.indices())

        info.state = TransferState.ACCEPTED
        info.resumable = True
        info.local_path = str(output_path)
        info.touch(self._clock())

        await self._send(info.peer_id, self._message(
            MessageType.ACCEPT, info, AcceptPayload(ready=True, resume_from=resume_from)
        ))
        logger.info(f"Accepted transfer {info.id} ({info.filename}) from {info.peer_id}")
        self._emit("transfer-accepted", info, resume_from=resume_from)

    # --- Incoming messages ---

    async def handle_message(self, from_peer: str, text: str) -> bool:
        """
        Process one incoming chat message.

        Returns False when the text is not protocol traffic (ordinary chat
        or undecodable), True when it was recognized, including messages
        addressed to another node, which are ignored.
        """
        if not is_protocol_text(text):
            return False

        msg = decode_from_transport(text)
        if msg is None:
            logger.warning(f"Ignoring undecodable protocol message from {from_peer}")
            return False

        if msg.recipient != self.node_id:
            logger.debug(f"Ignoring {msg.type.value} for {msg.recipient} (not this node)")
            return True

        logger.debug(f"Received {msg.type.value} for {msg.transfer_id} from {msg.sender}")
        if msg.type == MessageType.OFFER:
            if not await self._screen_offer(msg):
                return True
        elif msg.transfer_id not in self._transfers:
            logger.debug(f"Ignoring {msg.type.value} for unknown transfer {msg.transfer_id}")
            return True

        async with self._locked(msg.transfer_id):
            await self._handlers[msg.type](msg)
        return True

    def _tracked(self, msg: OCFTMessage, direction: TransferDirection) -> TransferInfo | None:
        """The transfer a message refers to, if it may act on it."""
        info = self._transfers.get(msg.transfer_id)
        if info is None:
            logger.debug(f"Ignoring {msg.type.value} for unknown transfer {msg.transfer_id}")
            return None
        if info.direction != direction or info.peer_id != msg.sender:
            logger.warning(
                f"Ignoring {msg.type.value} for {msg.transfer_id} from {msg.sender}: "
                f"not valid for this {info.direction.value} transfer"
            )
            return None
        if info.state == TransferState.CANCELLED:
            logger.debug(f"Ignoring {msg.type.value} for cancelled transfer {msg.transfer_id}")
            return None
        return info

    def _offer_problem(self, payload: OfferPayload) -> str | None:
        if payload.chunk_size <= 0:
            return f"invalid chunk size {payload.chunk_size}"
        expected = chunk_count(payload.size, payload.chunk_size)
        if payload.total_chunks != expected:
            return f"totalChunks {payload.total_chunks} does not match size (expected {expected})"
        if payload.resume_from is not None and not 0 <= payload.resume_from <= expected:
            return f"resumeFrom {payload.resume_from} out of range"
        return None

    async def _reply_reject(self, msg: OCFTMessage, reason: str) -> None:
        await self._send(msg.sender, build_message(
            MessageType.REJECT, msg.transfer_id, self.node_id, msg.sender,
            RejectPayload(reason=reason),
        ))

    async def _screen_offer(self, msg: OCFTMessage) -> bool:
        """
        Reject oversized or inconsistent offers before any state is created.

        Returns True when the offer may be processed.
        """
        payload: OfferPayload = msg.payload
        limit = self._config.max_file_size
        if payload.size > limit:
            logger.info(f"Rejecting {msg.transfer_id}: {payload.size} bytes exceeds limit")
            await self._reply_reject(
                msg, f"File too large: {payload.size} bytes exceeds limit of {limit} bytes"
            )
            return False

        problem = self._offer_problem(payload)
        if problem:
            logger.warning(f"Rejecting malformed offer {msg.transfer_id}: {problem}")
            await self._reply_reject(msg, f"Invalid offer: {problem}")
            return False
        return True

    async def _on_offer(self, msg: OCFTMessage) -> None:
        payload: OfferPayload = msg.payload
        existing = self._transfers.get(msg.transfer_id)
        if existing is not None and (
            existing.direction != TransferDirection.RECEIVE
            or existing.peer_id != msg.sender
            or existing.state in (TransferState.COMPLETED, TransferState.CANCELLED)
        ):
            logger.warning(f"Ignoring offer for existing transfer {msg.transfer_id}")
            return

        now = self._clock()
        info = TransferInfo(
            id=msg.transfer_id,
            direction=TransferDirection.RECEIVE,
            peer_id=msg.sender,
            filename=payload.filename,
            size=payload.size,
            mime_type=payload.mime_type,
            hash=payload.hash,
            chunk_size=payload.chunk_size,
            total_chunks=payload.total_chunks,
            started_at=now,
            updated_at=now,
            resume_from=payload.resume_from,
        )
        if existing is not None and existing.hash == payload.hash:
            # re-offer of a known transfer, typically a sender-side resume
            info.started_at = existing.started_at
            info.resumable = existing.resumable
            info.received_chunks = existing.received_chunks
        else:
            self._assemblers.pop(msg.transfer_id, None)

        self._transfers[msg.transfer_id] = info
        logger.info(
            f"Offer {msg.transfer_id} from {msg.sender}: "
            f"{info.filename} ({info.size} bytes)"
        )
        self._emit("offer-received", info)

        if self._secret_valid(payload.secret, payload.secret_ttl):
            logger.info(f"Auto-accepting {msg.transfer_id}: sender presented our secret")
            await self._accept(info, payload.resume_from)
            return

        if self._config.auto_accept:
            peer = self._trust_store.find_trusted(msg.sender, now)
            if peer is not None:
                logger.info(f"Auto-accepting {msg.transfer_id}: trusted peer {peer.label}")
                await self._accept(info, payload.resume_from)

    def _secret_valid(self, secret: str | None, secret_ttl: int | None) -> bool:
        if not secrets_match(secret, self._config.secret):
            return False
        if secret_ttl is not None and self._clock() > secret_ttl:
            logger.info("Offered secret has expired")
            return False
        return True

    async def _on_accept(self, msg: OCFTMessage) -> None:
        info = self._tracked(msg, TransferDirection.SEND)
        if info is None or info.state in _FINAL_STATES:
            return

        payload: AcceptPayload = msg.payload
        start = payload.resume_from if payload.resume_from is not None else 0
        start = min(max(start, 0), info.total_chunks)

        info.state = TransferState.TRANSFERRING
        info.resumable = True
        info.error = None
        info.touch(self._clock())
        logger.info(f"Transfer {info.id} accepted by {info.peer_id}, starting at chunk {start}")
        self._emit("transfer-started", info, resume_from=start)

        if start < info.total_chunks:
            await self._send_chunk(info, start)
        else:
            await self._finish_sending(info)

    async def _on_reject(self, msg: OCFTMessage) -> None:
        info = self._tracked(msg, TransferDirection.SEND)
        if info is None or info.state in _FINAL_STATES:
            return

        payload: RejectPayload = msg.payload
        info.state = TransferState.REJECTED
        info.error = payload.reason
        info.touch(self._clock())
        self._in_flight.pop(info.id, None)
        logger.info(f"Transfer {info.id} rejected by {info.peer_id}: {payload.reason}")
        self._emit("transfer-rejected", info)

    async def _on_chunk(self, msg: OCFTMessage) -> None:
        info = self._tracked(msg, TransferDirection.RECEIVE)
        assembler = self._assemblers.get(msg.transfer_id)
        if info is None or assembler is None or info.state not in _RECEIVING_STATES:
            logger.debug(f"Ignoring chunk for inactive transfer {msg.transfer_id}")
            return

        payload: ChunkPayload = msg.payload
        error = None
        if not 0 <= payload.index < info.total_chunks:
            error = f"Chunk index {payload.index} out of range"
        else:
            try:
                data = decode_chunk_data(payload.data)
            except ValueError:
                error = "Invalid chunk encoding"
            else:
                added = await asyncio.to_thread(
                    assembler.add_chunk, payload.index, data, payload.hash
                )
                if not added:
                    error = "Hash mismatch"

        received = error is None
        if received:
            info.state = TransferState.TRANSFERRING
            info.received_chunks.add(payload.index)
        else:
            logger.warning(f"Chunk {payload.index} of {info.id} refused: {error}")
        info.touch(self._clock())

        await self._send(msg.sender, self._message(
            MessageType.ACK,
            info,
            AckPayload(index=payload.index, received=received, error=error),
        ))
        self._emit(
            "chunk-received",
            info,
            index=payload.index,
            received=received,
            progress=assembler.progress(),
        )

    async def _on_ack(self, msg: OCFTMessage) -> None:
        info = self._tracked(msg, TransferDirection.SEND)
        if info is None:
            return

        payload: AckPayload = msg.payload
        if info.state in (TransferState.COMPLETING, TransferState.COMPLETED):
            if payload.is_final and info.state == TransferState.COMPLETING:
                await self._finalize_sender(info, payload)
            return

        if info.state != TransferState.TRANSFERRING or payload.is_final:
            logger.debug(f"Ignoring stray ack for {info.id} in state {info.state.value}")
            return

        if payload.index != self._in_flight.get(info.id):
            logger.debug(f"Ignoring ack for chunk {payload.index} of {info.id}: not in flight")
            return

        if not payload.received:
            logger.warning(
                f"Chunk {payload.index} of {info.id} not received "
                f"({payload.error or 'no reason'}), resending"
            )
            await self._send_chunk(info, payload.index)
            return

        info.received_chunks.add(payload.index)
        info.touch(self._clock())
        self._emit("ack-received", info, index=payload.index)

        next_index = payload.index + 1
        if next_index < info.total_chunks:
            await self._send_chunk(info, next_index)
        else:
            await self._finish_sending(info)

    async def _finalize_sender(self, info: TransferInfo, payload: AckPayload) -> None:
        now = self._clock()
        info.touch(now)
        if payload.received:
            info.state = TransferState.COMPLETED
            info.completed_at = now
            logger.info(f"Transfer {info.id} completed: {info.peer_id} verified {info.filename}")
            self._emit("transfer-completed", info)
        else:
            info.state = TransferState.FAILED
            info.error = payload.error or "Receiver could not assemble the file"
            logger.error(f"Transfer {info.id} failed on receiver: {info.error}")
            self._emit("transfer-failed", info)

    async def _on_complete(self, msg: OCFTMessage) -> None:
        info = self._tracked(msg, TransferDirection.RECEIVE)
        assembler = self._assemblers.get(msg.transfer_id)
        if info is None or assembler is None or info.state not in _RECEIVING_STATES:
            logger.debug(f"Ignoring complete for inactive transfer {msg.transfer_id}")
            return

        payload: CompletePayload = msg.payload
        if payload.hash != info.hash or payload.total_chunks != info.total_chunks:
            logger.warning(f"Complete for {info.id} does not match its offer; using the offer")

        error = None
        try:
            path = await asyncio.to_thread(assembler.assemble)
        except MissingChunksError as e:
            error = str(e)
        except FileHashMismatchError as e:
            error = str(e)
            # every chunk is suspect now, so a resume starts over
            assembler.reset()
            info.received_chunks = set()
        except OSError as e:
            error = f"Failed to write file: {e}"

        now = self._clock()
        info.touch(now)
        if error is None:
            info.state = TransferState.COMPLETED
            info.completed_at = now
            info.local_path = str(path)
            self._assemblers.pop(info.id, None)
            logger.info(f"Transfer {info.id} completed: saved {path}")
        else:
            info.state = TransferState.FAILED
            info.error = error
            logger.error(f"Transfer {info.id} failed: {error}")

        await self._send(msg.sender, self._message(
            MessageType.ACK,
            info,
            AckPayload(index=FINAL_ACK_INDEX, received=error is None, error=error),
        ))
        self._emit("transfer-completed" if error is None else "transfer-failed", info)

    async def _on_error(self, msg: OCFTMessage) -> None:
        info = self._transfers.get(msg.transfer_id)
        if info is None or info.peer_id != msg.sender:
            return
        if info.state in (TransferState.COMPLETED, TransferState.CANCELLED):
            return

        payload: ErrorPayload = msg.payload
        info.state = TransferState.FAILED
        info.error = payload.message
        info.touch(self._clock())
        self._in_flight.pop(info.id, None)
        logger.error(f"Transfer {info.id} failed by peer: [{payload.code}] {payload.message}")
        self._emit(
            "transfer-failed", info, code=payload.code, recoverable=payload.recoverable
        )

    # --- Sending helpers ---

    def _message(self, msg_type: MessageType, info: TransferInfo, payload: Payload) -> OCFTMessage:
        return build_message(msg_type, info.id, self.node_id, info.peer_id, payload)

    def _offer_message(self, info: TransferInfo, resume_from: int | None = None) -> OCFTMessage:
        ttl = self._config.secret_ttl
        return self._message(MessageType.OFFER, info, OfferPayload(
            filename=info.filename,
            size=info.size,
            mime_type=info.mime_type,
            hash=info.hash,
            chunk_size=info.chunk_size,
            total_chunks=info.total_chunks,
            secret=self._trust_store.secret_for(info.peer_id),
            secret_ttl=self._clock() + int(ttl * 1000) if ttl else None,
            resume_from=resume_from,
        ))

    async def _send_chunk(self, info: TransferInfo, index: int) -> None:
        try:
            chunk = await asyncio.to_thread(read_chunk, info.local_path, index, info.chunk_size)
        except (OSError, IndexError) as e:
            await self._fail(info, f"Failed to read chunk {index}: {e}", code="IO_ERROR")
            return

        self._in_flight[info.id] = index
        info.touch(self._clock())
        await self._send(info.peer_id, self._message(
            MessageType.CHUNK,
            info,
            ChunkPayload(index=index, data=encode_chunk_data(chunk.data), hash=chunk.hash),
        ))
        self._emit("chunk-sent", info, index=index)

    async def _finish_sending(self, info: TransferInfo) -> None:
        info.state = TransferState.COMPLETING
        info.touch(self._clock())
        self._in_flight.pop(info.id, None)
        await self._send(info.peer_id, self._message(
            MessageType.COMPLETE,
            info,
            CompletePayload(total_chunks=info.total_chunks, hash=info.hash),
        ))
        logger.info(f"All {info.total_chunks} chunks of {info.id} acknowledged, completing")

    async def _fail(self, info: TransferInfo, error: str, code: str) -> None:
        """Fail a transfer locally and tell the peer."""
        info.state = TransferState.FAILED
        info.error = error
        info.touch(self._clock())
        self._in_flight.pop(info.id, None)
        logger.error(f"Transfer {info.id} failed: {error}")
        await self._send(info.peer_id, self._message(
            MessageType.ERROR, info, ErrorPayload(code=code, message=error, recoverable=True)
        ))
        self._emit("transfer-failed", info, code=code)

    async def _send(self, peer_id: str, msg: OCFTMessage) -> None:
        logger.debug(f"Sending {msg.type.value} for {msg.transfer_id} to {peer_id}")
        await self._send_text(peer_id, encode_for_transport(msg))
