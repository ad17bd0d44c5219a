"""Exceptions raised by the chunk codec and the transfer engine."""


class TransferError(Exception):
    """Base class for all transfer errors."""


class TransferNotFound(TransferError):
    def __init__(self, transfer_id: str) -> None:
        super().__init__(f"Transfer not found: {transfer_id}")
        self.transfer_id = transfer_id


class InvalidStateTransition(TransferError):
    """A local operation was invoked on a transfer in the wrong state."""

    def __init__(self, transfer_id: str, state: str, operation: str) -> None:
        super().__init__(
            f"Cannot {operation} transfer {transfer_id} in state '{state}'"
        )
        self.transfer_id = transfer_id
        self.state = state
        self.operation = operation


class MissingChunksError(TransferError):
    """Assembly was attempted before every chunk index was present."""

    def __init__(self, missing: list[int]) -> None:
        super().__init__(f"Missing chunks: {', '.join(map(str, missing))}")
        self.missing = missing


class FileHashMismatchError(TransferError):
    """The assembled file does not match the hash declared in the offer."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            f"File hash mismatch: expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual
