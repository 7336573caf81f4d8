"""Local disk filesystem served to FTP clients."""
import enum
import errno
import logging
import os
import shutil
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

logger = logging.getLogger(__name__)


class FsErrorKind(enum.Enum):
    """Why a filesystem operation was not performed."""
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    NOT_A_DIRECTORY = "not_a_directory"
    PERMISSION_DENIED = "permission_denied"
    OUTSIDE_ROOT = "outside_root"
    IO_ERROR = "io_error"


@dataclass(frozen=True)
class FsResult:
    """Outcome of a filesystem operation: a value or an error kind."""

    value: Any = None
    error: Optional[FsErrorKind] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: FsErrorKind, detail: str = "") -> "FsResult":
        return cls(error=error, detail=detail)


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    size: int
    is_directory: bool


def classify_os_error(exc: Exception) -> FsErrorKind:
    """Map an OSError onto an error kind; anything else is an I/O error."""
    if not isinstance(exc, OSError):
        # e.g. ValueError for an embedded null byte
        return FsErrorKind.IO_ERROR
    if isinstance(exc, FileNotFoundError):
        return FsErrorKind.NOT_FOUND
    if isinstance(exc, FileExistsError):
        return FsErrorKind.ALREADY_EXISTS
    if isinstance(exc, NotADirectoryError):
        return FsErrorKind.NOT_A_DIRECTORY
    if isinstance(exc, PermissionError):
        return FsErrorKind.PERMISSION_DENIED
    if exc.errno == errno.ENOENT:
        return FsErrorKind.NOT_FOUND
    return FsErrorKind.IO_ERROR


class LocalFileSystem:
    """Filesystem operations on absolute host paths.

    Nothing here raises for ordinary failures: every mutating or reading
    call returns an ``FsResult`` carrying the error kind instead.
    """

    def _fail(self, operation: str, path: str, exc: Exception) -> FsResult:
        kind = classify_os_error(exc)
        logger.warning(f"{operation} failed for {path}: {kind.value} ({exc})")
        return FsResult.failure(kind, str(exc))

    def file_exists(self, path: str) -> bool:
        return os.path.isfile(path)

    def directory_exists(self, path: str) -> bool:
        return os.path.isdir(path)

    def list_directory(self, path: str) -> FsResult:
        """List a directory as ``DirectoryEntry`` values sorted by name."""
        entries: List[DirectoryEntry] = []
        try:
            with os.scandir(path) as it:
                for entry in it:
                    is_directory = entry.is_dir()
                    size = 0 if is_directory else entry.stat().st_size
                    entries.append(DirectoryEntry(entry.name, size, is_directory))
        except (OSError, ValueError) as e:
            return self._fail("list", path, e)
        entries.sort(key=lambda entry: entry.name)
        return FsResult(entries)

    def write_file(self, path: str, chunks: Iterable[bytes]) -> FsResult:
        """Create or truncate ``path`` and write every chunk to it.

        Returns:
            FsResult whose value is the number of bytes written
        """
        written = 0
        try:
            with open(path, 'wb') as f:
                for chunk in chunks:
                    f.write(chunk)
                    written += len(chunk)
        except (OSError, ValueError) as e:
            return self._fail("write", path, e)
        return FsResult(written)

    def read_all_bytes(self, path: str) -> FsResult:
        try:
            with open(path, 'rb') as f:
                return FsResult(f.read())
        except (OSError, ValueError) as e:
            return self._fail("read", path, e)

    def delete_file(self, path: str) -> FsResult:
        try:
            os.remove(path)
        except (OSError, ValueError) as e:
            return self._fail("delete", path, e)
        return FsResult(True)

    def create_directory(self, path: str) -> FsResult:
        try:
            os.makedirs(path)
        except (OSError, ValueError) as e:
            return self._fail("mkdir", path, e)
        return FsResult(True)

    def delete_directory(self, path: str, recursive: bool = True) -> FsResult:
        try:
            if recursive:
                shutil.rmtree(path)
            else:
                os.rmdir(path)
        except (OSError, ValueError) as e:
            return self._fail("rmdir", path, e)
        return FsResult(True)

    def parent_of(self, path: str) -> str:
        return os.path.dirname(os.path.normpath(path))
