"""Error taxonomy for the storage engine.

The HTTP layer maps each class to a coarse status code; messages carry
internal detail and are only ever logged.
"""


class VanishlingError(Exception):
    """Base exception for all storage engine errors."""


class ValidationError(VanishlingError):
    """Raised for an empty or unsafe filename, a zero-size or oversized upload."""


class ForbiddenError(VanishlingError):
    """Raised when a file identifier would escape the storage root."""

    def __init__(self, file_id: str) -> None:
        self.file_id = file_id
        super().__init__(f"Unsafe file identifier: {file_id!r}")


class NotFoundError(VanishlingError):
    """Raised when a safe file identifier has no blob on disk."""

    def __init__(self, file_id: str) -> None:
        self.file_id = file_id
        super().__init__(f"Blob not found: {file_id}")


class CollisionError(VanishlingError):
    """Raised when a content identifier already exists in the store."""

    def __init__(self, file_id: str) -> None:
        self.file_id = file_id
        super().__init__(f"Blob already exists: {file_id}")


class StorageIOError(VanishlingError):
    """Raised for filesystem failures on write, append or scan."""


class JournalParseError(VanishlingError):
    """Raised when a journal line cannot be parsed into a record."""

    def __init__(self, line: str, reason: str) -> None:
        self.line = line
        self.reason = reason
        super().__init__(f"Malformed journal record ({reason}): {line!r}")


class StorageInitError(VanishlingError):
    """Raised when the storage or journal directories cannot be prepared."""
