import hashlib

import pytest

from transfer.chunker import (
    DEFAULT_MIME_TYPE,
    ChunkAssembler,
    describe,
    iter_chunks,
    read_chunk,
)
from transfer.errors import FileHashMismatchError, MissingChunksError


def sha(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def test_describe(make_file):
    path = make_file("notes.txt", size=2500)
    info = describe(path, chunk_size=1024)

    assert info.filename == "notes.txt"
    assert info.size == 2500
    assert info.total_chunks == 3
    assert info.chunk_size == 1024
    assert info.mime_type == "text/plain"
    assert info.hash == sha(path.read_bytes())


def test_describe_unknown_extension_is_octet_stream(make_file):
    info = describe(make_file("blob.ocftunknown", size=10), chunk_size=4)
    assert info.mime_type == DEFAULT_MIME_TYPE
    assert info.total_chunks == 3


def test_describe_missing_file(tmp_path):
    with pytest.raises(OSError):
        describe(tmp_path / "nope.bin")


def test_read_chunk_ranges(make_file):
    path = make_file(size=2500)
    content = path.read_bytes()

    first = read_chunk(path, 0, 1024)
    last = read_chunk(path, 2, 1024)

    assert first.data == content[:1024]
    assert first.hash == sha(content[:1024])
    assert last.data == content[2048:]
    assert len(last.data) == 452


@pytest.mark.parametrize("index", [-1, 3])
def test_read_chunk_out_of_range(make_file, index):
    path = make_file(size=2500)
    with pytest.raises(IndexError):
        read_chunk(path, index, 1024)


def test_assemble_reproduces_file(make_file, tmp_path):
    path = make_file(size=5000)
    info = describe(path, 1024)
    out = tmp_path / "in" / "copy.bin"

    assembler = ChunkAssembler(out, info.hash, info.total_chunks)
    for chunk in reversed(list(iter_chunks(path, 1024))):
        assert assembler.add_chunk(chunk.index, chunk.data, chunk.hash)

    assert assembler.is_complete()
    assert assembler.assemble() == out
    assert out.read_bytes() == path.read_bytes()
    assert sha(out.read_bytes()) == info.hash


def test_add_chunk_rejects_bad_hash_then_accepts_resend(tmp_path):
    data = b"x" * 100
    assembler = ChunkAssembler(tmp_path / "f", sha(data), 1)

    assert assembler.add_chunk(0, data, sha(b"something else")) is False
    assert not assembler.has_chunk(0)
    assert assembler.progress() == 0

    assert assembler.add_chunk(0, data, sha(data)) is True
    assert assembler.has_chunk(0)
    # same bytes again is a no-op success
    assert assembler.add_chunk(0, data, sha(data)) is True
    assert assembler.received_count == 1


def test_add_chunk_out_of_range(tmp_path):
    assembler = ChunkAssembler(tmp_path / "f", "0" * 64, 2)
    with pytest.raises(IndexError):
        assembler.add_chunk(2, b"a", sha(b"a"))


def test_progress_is_floored(tmp_path):
    assembler = ChunkAssembler(tmp_path / "f", "0" * 64, 3)
    assembler.add_chunk(1, b"a", sha(b"a"))
    assert assembler.progress() == 33
    assembler.add_chunk(0, b"b", sha(b"b"))
    assert assembler.progress() == 66


def test_assemble_lists_missing_chunks(tmp_path):
    out = tmp_path / "out.bin"
    assembler = ChunkAssembler(out, "0" * 64, 4)
    assembler.add_chunk(1, b"a", sha(b"a"))

    with pytest.raises(MissingChunksError) as exc:
        assembler.assemble()

    assert exc.value.missing == [0, 2, 3]
    assert "Missing chunks: 0, 2, 3" in str(exc.value)
    assert not out.exists()


def test_assemble_hash_mismatch_writes_nothing(tmp_path):
    out = tmp_path / "out.bin"
    assembler = ChunkAssembler(out, sha(b"expected"), 1)
    assembler.add_chunk(0, b"actual", sha(b"actual"))

    with pytest.raises(FileHashMismatchError):
        assembler.assemble()

    assert list(tmp_path.iterdir()) == []


def test_empty_file(make_file, tmp_path):
    path = make_file("empty.dat", content=b"")
    info = describe(path, 1024)
    assert info.total_chunks == 0

    out = tmp_path / "empty-copy.dat"
    assembler = ChunkAssembler(out, info.hash, 0)
    assert assembler.progress() == 100
    assembler.assemble()
    assert out.read_bytes() == b""
