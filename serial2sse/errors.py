"""Errors surfaced by the relay to its callers."""


class RelayError(Exception):
    """Base class for relay errors."""


class ScanFailure(RelayError):
    """Serial port enumeration failed."""


class OpenFailure(RelayError):
    """The requested serial port could not be opened."""

    def __init__(self, port: str, detail: str):
        super().__init__(f"{port}: {detail}")
        self.port = port
        self.detail = detail
