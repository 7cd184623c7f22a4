import errno
import logging
import os
import uuid
from pathlib import Path
from typing import BinaryIO

from .errors import (
    CollisionError,
    ForbiddenError,
    NotFoundError,
    StorageInitError,
    StorageIOError,
    ValidationError,
)

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1MB
MAX_NAME_LENGTH = 255


def ensure_dir(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageInitError(f"cannot create directory {path}: {e}") from e


def check_identifier(file_id: str) -> None:
    """Reject identifiers that could address anything outside the root."""
    if not file_id:
        raise ValidationError("empty file identifier")
    if ".." in file_id or "/" in file_id or "\\" in file_id:
        raise ForbiddenError(file_id)


class BlobStore:
    """One file per blob under ``root``, named by its content identifier."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).absolute()
        ensure_dir(self._root)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, file_id: str) -> Path:
        check_identifier(file_id)
        return self._root / file_id

    def ensure_writable(self) -> None:
        """Create and remove a throwaway file to prove the root accepts writes."""
        scratch = self._root / f".write-check-{uuid.uuid4().hex}"
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            with scratch.open("xb"):
                pass
        except OSError as e:
            raise StorageIOError(f"storage root {self._root} is not writable: {e}") from e
        try:
            scratch.unlink()
        except OSError as e:
            raise StorageIOError(f"cannot remove scratch file {scratch}: {e}") from e

    def put(self, file_id: str, reader: BinaryIO) -> int:
        """Write ``reader`` to a new blob; return the number of bytes written.

        The destination is opened with exclusive create, so an existing blob
        with the same id is never overwritten.
        """
        destination = self.path_for(file_id)
        self.ensure_writable()

        try:
            out = destination.open("xb")
        except FileExistsError as e:
            raise CollisionError(file_id) from e
        except OSError as e:
            raise StorageIOError(f"cannot create blob {destination}: {e}") from e

        size = 0
        try:
            with out:
                while True:
                    chunk = reader.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    out.write(chunk)
                out.flush()
                os.fsync(out.fileno())
        except OSError as e:
            destination.unlink(missing_ok=True)
            raise StorageIOError(f"failed writing blob {destination}: {e}") from e

        return size

    def get(self, file_id: str) -> bytes:
        path = self.path_for(file_id)
        if len(file_id.encode("utf-8")) > MAX_NAME_LENGTH:
            # no blob can carry a name the filesystem refuses
            raise NotFoundError(file_id)
        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError) as e:
            raise NotFoundError(file_id) from e
        except OSError as e:
            if e.errno == errno.ENAMETOOLONG:
                raise NotFoundError(file_id) from e
            raise StorageIOError(f"failed reading blob {path}: {e}") from e

    def exists(self, file_id: str) -> bool:
        return self.path_for(file_id).is_file()

    def contains_path(self, path: str | Path) -> bool:
        candidate = Path(path)
        return candidate.is_absolute() and candidate.parent == self._root and ".." not in candidate.parts

    def delete(self, path: str | Path) -> bool:
        """Remove a blob by path. Failures are logged, never raised.

        Returns True only when a file was actually removed.
        """
        if not self.contains_path(path):
            logger.warning("refusing to delete %s: outside storage root %s", path, self._root)
            return False
        try:
            Path(path).unlink()
        except FileNotFoundError:
            logger.debug("blob %s already gone", path)
            return False
        except OSError as e:
            logger.warning("could not delete blob %s: %s", path, e)
            return False
        return True
