"""
File chunker.

Splits a file into fixed-size chunks, each carrying the SHA-256 of its
raw bytes, and reassembles them on the receiving side. Every chunk is
verified on arrival so corruption can be nacked and resent individually
instead of restarting the whole transfer.

Everything here is synchronous; the engine runs it in a worker thread.
"""

import logging
import mimetypes
import os
from pathlib import Path
from typing import Iterator

from security.crypto import Sha256, sha256_hex
from transfer.errors import FileHashMismatchError, MissingChunksError
from transfer.models import Chunk, FileInfo

logger = logging.getLogger(__name__)

# 48 KB keeps a base64-encoded chunk comfortably inside one chat message
DEFAULT_CHUNK_SIZE = 48 * 1024
DEFAULT_MIME_TYPE = "application/octet-stream"
_READ_BLOCK = 256 * 1024

MIME_TYPES = {
    "txt": "text/plain",
    "json": "application/json",
    "js": "text/javascript",
    "ts": "text/typescript",
    "html": "text/html",
    "css": "text/css",
    "md": "text/markdown",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "pdf": "application/pdf",
    "zip": "application/zip",
    "tar": "application/x-tar",
    "gz": "application/gzip",
}


def chunk_count(size: int, chunk_size: int) -> int:
    """Number of chunks for a file of ``size`` bytes."""
    return (size + chunk_size - 1) // chunk_size


def guess_mime_type(filename: str) -> str:
    ext = Path(filename).suffix.lower().lstrip(".")
    if ext in MIME_TYPES:
        return MIME_TYPES[ext]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or DEFAULT_MIME_TYPE


def describe(file_path: str | Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> FileInfo:
    """
    Compute the metadata announced in an offer.

    Raises:
        OSError: the file cannot be read.
        ValueError: ``chunk_size`` is not positive.
    """
    if chunk_size <= 0:
        raise ValueError(f"Chunk size must be positive, got {chunk_size}")

    path = Path(file_path)
    hasher = Sha256()
    size = 0
    with open(path, "rb") as f:
        while True:
            block = f.read(_READ_BLOCK)
            if not block:
                break
            hasher.update(block)
            size += len(block)

    return FileInfo(
        filename=path.name or "file",
        size=size,
        mime_type=guess_mime_type(path.name),
        hash=hasher.hexdigest(),
        chunk_size=chunk_size,
        total_chunks=chunk_count(size, chunk_size),
    )


def read_chunk(
    file_path: str | Path, index: int, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> Chunk:
    """
    Read chunk ``index`` with its hash.

    Raises:
        IndexError: ``index`` is outside the range implied by the file size.
        OSError: the file cannot be read.
    """
    size = os.path.getsize(file_path)
    total = chunk_count(size, chunk_size)
    if index < 0 or index >= total:
        raise IndexError(f"Chunk index {index} out of range (0..{total - 1})")

    start = index * chunk_size
    with open(file_path, "rb") as f:
        f.seek(start)
        data = f.read(min(chunk_size, size - start))

    return Chunk(index=index, data=data, hash=sha256_hex(data))


def iter_chunks(
    file_path: str | Path, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> Iterator[Chunk]:
    """Yield every chunk of a file in index order."""
    with open(file_path, "rb") as f:
        index = 0
        while True:
            data = f.read(chunk_size)
            if not data:
                break
            yield Chunk(index=index, data=data, hash=sha256_hex(data))
            index += 1


class ChunkAssembler:
    """
    Receiver-side accumulator for one transfer.

    Holds verified chunk bytes in memory until every index is present,
    then writes the file exactly once.
    """

    def __init__(self, output_path: str | Path, expected_hash: str, total_chunks: int):
        self.output_path = Path(output_path)
        self.expected_hash = expected_hash
        self.total_chunks = total_chunks
        self._chunks: dict[int, bytes] = {}

    @property
    def received_count(self) -> int:
        return len(self._chunks)

    def has_chunk(self, index: int) -> bool:
        return index in self._chunks

    def indices(self) -> list[int]:
        return sorted(self._chunks)

    def add_chunk(self, index: int, data: bytes, declared_hash: str) -> bool:
        """
        Store a chunk if its SHA-256 matches ``declared_hash``.

        Returns False, storing nothing, on a mismatch. Re-adding an index
        replaces the previous bytes.
        """
        if index < 0 or index >= self.total_chunks:
            raise IndexError(
                f"Chunk index {index} out of range (0..{self.total_chunks - 1})"
            )

        actual = sha256_hex(data)
        if actual != declared_hash:
            logger.warning(
                f"Chunk {index} hash mismatch: expected {declared_hash}, got {actual}"
            )
            return False

        self._chunks[index] = data
        return True

    def is_complete(self) -> bool:
        return len(self._chunks) == self.total_chunks

    def missing_chunks(self) -> list[int]:
        return [i for i in range(self.total_chunks) if i not in self._chunks]

    def progress(self) -> int:
        """Percentage of chunks received, 0..100."""
        if self.total_chunks == 0:
            return 100
        return 100 * len(self._chunks) // self.total_chunks

    def reset(self) -> None:
        self._chunks.clear()

    def assemble(self) -> Path:
        """
        Concatenate the chunks in order, verify and write the file.

        Nothing is written unless the whole-file hash matches.

        Raises:
            MissingChunksError: some indices were never received.
            FileHashMismatchError: the concatenation does not match.
            OSError: the output file cannot be written.
        """
        missing = self.missing_chunks()
        if missing:
            raise MissingChunksError(missing)

        combined = b"".join(self._chunks[i] for i in range(self.total_chunks))
        actual = sha256_hex(combined)
        if actual != self.expected_hash:
            raise FileHashMismatchError(self.expected_hash, actual)

        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        partial = self.output_path.with_name(self.output_path.name + ".part")
        try:
            partial.write_bytes(combined)
            os.replace(partial, self.output_path)
        except OSError:
            partial.unlink(missing_ok=True)
            raise

        logger.info(f"Assembled {self.output_path} ({len(combined)} bytes)")
        return self.output_path
