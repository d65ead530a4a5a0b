from __future__ import annotations


class PersistenceError(RuntimeError):
    """Raised when a write to the durable key-value store fails."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class ConversionError(RuntimeError):
    """Raised when the pandoc invocation cannot produce an output document."""

    def __init__(self, message: str, *, stderr: str | None = None) -> None:
        super().__init__(message)
        self.stderr = stderr
