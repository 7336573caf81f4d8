"""Filesystem and data transfer commands."""
import logging
import os
import socket
from typing import Iterator, Optional, Tuple
from miniftpd.core.control import ControlConnection
from miniftpd.core.data_channel import DataConnectionError, NoMode
from miniftpd.core.filesystem import DirectoryEntry, FsErrorKind, FsResult, LocalFileSystem
from miniftpd.core.session import Session

logger = logging.getLogger(__name__)

# Every filesystem failure is a 550; the text tells the client why
FS_ERROR_REPLIES = {
    FsErrorKind.NOT_FOUND: (550, "File or directory not found."),
    FsErrorKind.ALREADY_EXISTS: (550, "File or directory already exists."),
    FsErrorKind.NOT_A_DIRECTORY: (550, "Not a directory."),
    FsErrorKind.PERMISSION_DENIED: (550, "Permission denied."),
    FsErrorKind.OUTSIDE_ROOT: (550, "Requested action not taken."),
    FsErrorKind.IO_ERROR: (550, "Requested action not taken."),
}

TransferOutcome = Tuple[int, str, int]


def format_listing_line(entry: DirectoryEntry) -> str:
    """Format one LIST line; permissions and date are fixed values."""
    kind = 'd' if entry.is_directory else '-'
    return f"{kind}rwxrwxrwx 1 unknown unknown {entry.size} Jan 1 09:00 {entry.name}\r\n"


class TransferEngine:
    """Runs the directory, file and transfer commands of one session.

    Handlers send their own replies on the control connection. Data
    connections are always closed before the final reply of a command.
    """

    def __init__(
        self,
        session: Session,
        control: ControlConnection,
        filesystem: Optional[LocalFileSystem] = None,
        recorder=None,
        strict: bool = False,
    ):
        self.session = session
        self.control = control
        self.filesystem = filesystem or LocalFileSystem()
        self.recorder = recorder
        self.strict = strict

    @property
    def transport(self):
        return self.session.data_channel.transport

    def resolve_path(self, argument: str) -> FsResult:
        """Resolve a client path against the session directories.

        A leading separator is relative to the base directory, anything
        else to the current directory. Results outside the base directory
        are rejected with OUTSIDE_ROOT.
        """
        if '\x00' in argument:
            logger.warning(f"Rejected path with null byte from {self.session.client_ip}")
            return FsResult.failure(FsErrorKind.IO_ERROR, "embedded null byte")

        base = self.session.base_directory
        if argument.startswith(os.sep):
            target = os.path.join(base, argument.lstrip(os.sep))
        else:
            target = os.path.join(self.session.current_directory, argument)
        target = os.path.normpath(target)

        try:
            inside = os.path.commonpath([base, target]) == base
        except ValueError:
            # Different drives
            inside = False
        if not inside:
            logger.warning(f"Rejected path outside root from {self.session.client_ip}: {argument}")
            return FsResult.failure(FsErrorKind.OUTSIDE_ROOT, argument)
        return FsResult(target)

    def virtual_path(self, path: str) -> str:
        """Client view of a host path below the base directory."""
        relative = os.path.relpath(path, self.session.base_directory)
        if relative == '.':
            return '/'
        return '/' + relative.replace(os.sep, '/')

    def _reply_error(self, result: FsResult):
        self.control.send_reply(*FS_ERROR_REPLIES[result.error])

    def _require_argument(self, argument: str) -> bool:
        if not argument:
            self.control.send_reply(501, "Syntax error in parameters or arguments.")
            return False
        return True

    def cwd(self, argument: str):
        if not self._require_argument(argument):
            return
        target = self.resolve_path(argument)
        if not target.ok:
            self._reply_error(target)
            return
        if not self.filesystem.directory_exists(target.value):
            self.control.send_reply(550, "Requested action not taken.")
            return
        self.session.current_directory = target.value
        self.control.send_reply(250, "Requested file action okay.")

    def pwd(self, argument: str = ""):
        path = self.virtual_path(self.session.current_directory)
        self.control.send_reply(257, f'"{path}" is the current directory.')

    def cdup(self, argument: str = ""):
        current = self.session.current_directory
        if current == self.session.base_directory:
            self.control.send_reply(550, "Requested action not taken.")
            return
        parent = self.filesystem.parent_of(current)
        if not self.filesystem.directory_exists(parent):
            self.control.send_reply(550, "Requested action not taken.")
            return
        self.session.current_directory = parent
        self.control.send_reply(250, "Requested file action okay.")

    def mkd(self, argument: str):
        if not self._require_argument(argument):
            return
        target = self.resolve_path(argument)
        if not target.ok:
            self._reply_error(target)
            return
        if self.filesystem.directory_exists(target.value) or self.filesystem.file_exists(target.value):
            self.control.send_reply(550, "Requested action not taken.")
            return
        result = self.filesystem.create_directory(target.value)
        if not result.ok:
            self._reply_error(result)
            return
        self.control.send_reply(200, "Command okay.")

    def rmd(self, argument: str):
        if not self._require_argument(argument):
            return
        target = self.resolve_path(argument)
        if not target.ok:
            self._reply_error(target)
            return
        path = target.value
        if path == self.session.base_directory or not self.filesystem.directory_exists(path):
            self.control.send_reply(550, "Requested action not taken.")
            return
        result = self.filesystem.delete_directory(path, recursive=True)
        if not result.ok:
            self._reply_error(result)
            return
        current = self.session.current_directory
        if os.path.commonpath([path, current]) == path:
            # Working directory was inside the removed tree
            self.session.current_directory = self.filesystem.parent_of(path)
        self.control.send_reply(200, "Command okay.")

    def dele(self, argument: str):
        if not self._require_argument(argument):
            return
        target = self.resolve_path(argument)
        if not target.ok:
            self._reply_error(target)
            return
        if not self.filesystem.file_exists(target.value):
            self.control.send_reply(550, "Requested action not taken.")
            return
        result = self.filesystem.delete_file(target.value)
        if not result.ok:
            self._reply_error(result)
            return
        self.control.send_reply(250, "Requested file action okay, completed.")

    def list(self, argument: str = ""):
        # Ignore ls style flags such as "-la" sent by some clients
        path = ' '.join(part for part in argument.split(' ') if part and not part.startswith('-'))
        self._transfer("LIST", path, self._send_listing)

    def retr(self, argument: str):
        if not self._require_argument(argument):
            return
        self._transfer("RETR", argument, self._send_file)

    def stor(self, argument: str):
        if not self._require_argument(argument):
            return
        self._transfer("STOR", argument, self._receive_file)

    def _open_data_connection(self) -> Optional[socket.socket]:
        data_channel = self.session.data_channel
        if self.strict and not isinstance(data_channel.mode, NoMode):
            self.control.send_reply(150, "File status okay; about to open data connection.")
        try:
            return data_channel.establish()
        except DataConnectionError as e:
            logger.warning(f"Data connection for {self.session.client_ip} failed: {e}")
            self.control.send_reply(425, "Can't open data connection.")
            return None

    def _transfer(self, verb: str, argument: str, action):
        conn = self._open_data_connection()
        if conn is None:
            return

        target = self.resolve_path(argument)
        try:
            if target.ok:
                code, message, size = action(conn, target.value)
            else:
                code, message = FS_ERROR_REPLIES[target.error]
                size = 0
        finally:
            self.transport.close(conn)

        self._record(verb, argument, target, size, code == 226)
        self.control.send_reply(code, message)

    def _send_listing(self, conn: socket.socket, path: str) -> TransferOutcome:
        result = self.filesystem.list_directory(path)
        if not result.ok:
            return FS_ERROR_REPLIES[result.error] + (0,)
        # Undecodable names go out as their original bytes
        listing = ''.join(format_listing_line(entry) for entry in result.value)
        return self._send_bytes(conn, listing.encode('utf-8', errors='surrogateescape'))

    def _send_file(self, conn: socket.socket, path: str) -> TransferOutcome:
        result = self.filesystem.read_all_bytes(path)
        if not result.ok:
            return FS_ERROR_REPLIES[result.error] + (0,)
        return self._send_bytes(conn, result.value)

    def _send_bytes(self, conn: socket.socket, data: bytes) -> TransferOutcome:
        try:
            self.transport.write(conn, data)
        except OSError as e:
            logger.warning(f"Data connection for {self.session.client_ip} dropped: {e}")
            return 550, "Requested action not taken.", 0
        return 226, "Transfer complete.", len(data)

    def _receive_file(self, conn: socket.socket, path: str) -> TransferOutcome:
        result = self.filesystem.write_file(path, self._iter_data(conn))
        if not result.ok:
            return FS_ERROR_REPLIES[result.error] + (0,)
        return 226, "Transfer complete.", result.value

    def _iter_data(self, conn: socket.socket) -> Iterator[bytes]:
        while True:
            chunk = self.transport.read(conn)
            if not chunk:
                return
            yield chunk

    def _record(self, verb: str, argument: str, target: FsResult, size: int, success: bool):
        logger.info(f"{verb} {argument or '.'} for {self.session.client_ip}: "
                    f"{'ok' if success else 'failed'}, {size} bytes")
        if self.recorder is None:
            return
        path = self.virtual_path(target.value) if target.ok else argument
        self.recorder.transfer(
            command=verb,
            path=path,
            size=size,
            success=success,
            client_ip=self.session.client_ip,
            username=self.session.username,
        )
