"""Control connection for one FTP session."""
import logging
import socket
from typing import Optional
from miniftpd.core.reply import format_reply

logger = logging.getLogger(__name__)

MAX_LINE_LENGTH = 8192


class ControlConnectionClosed(Exception):
    """The client dropped the control connection."""


class ControlConnection:
    """Line oriented command reader and reply writer over a socket."""

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self.closed = False
        self._buffer = bytearray()

    @property
    def local_address(self) -> str:
        return self.sock.getsockname()[0]

    @property
    def peer_address(self) -> str:
        return self.sock.getpeername()[0]

    def read_line(self) -> str:
        """Read one command line, without its line ending.

        Raises:
            ControlConnectionClosed: The peer closed the connection
            OSError: The socket failed or timed out
        """
        while True:
            index = self._buffer.find(b'\n')
            if index >= 0:
                line = bytes(self._buffer[:index + 1])
                del self._buffer[:index + 1]
                return line.decode('utf-8', errors='replace')

            if len(self._buffer) > MAX_LINE_LENGTH:
                line = bytes(self._buffer)
                self._buffer.clear()
                return line.decode('utf-8', errors='replace')

            data = self.sock.recv(4096)
            if not data:
                if self._buffer:
                    # Last line without terminator
                    line = bytes(self._buffer)
                    self._buffer.clear()
                    return line.decode('utf-8', errors='replace')
                raise ControlConnectionClosed()
            self._buffer.extend(data)

    def send_reply(self, code: int, message: Optional[str] = None):
        """Write one reply. Failures propagate and end the session."""
        self.sock.sendall(format_reply(code, message))

    def close(self):
        if self.closed:
            return
        self.closed = True
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Peer already gone
            pass
        self.sock.close()
