"""Socket transport used for data connections."""
import logging
import socket
from typing import Optional, Tuple
from miniftpd.core.config import DATA_TIMEOUT

logger = logging.getLogger(__name__)

CHUNK_SIZE = 65536


class Transport:
    """Blocking TCP primitives for the data channel.

    Every call blocks for at most ``timeout`` seconds; timeouts surface as
    ``OSError`` (``socket.timeout``) like any other connection failure.
    """

    def __init__(self, timeout: Optional[float] = DATA_TIMEOUT):
        self.timeout = timeout

    def listen_on_ephemeral_port(self, host: str = "") -> Tuple[int, socket.socket]:
        """Bind and listen right away so the client's connect cannot race.

        Returns:
            The chosen port and the listening socket
        """
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.bind((host, 0))
            listener.listen(1)
            listener.settimeout(self.timeout)
        except OSError:
            listener.close()
            raise
        port = listener.getsockname()[1]
        logger.debug(f"Passive listener open on {host or '*'}:{port}")
        return port, listener

    def accept(self, listener: socket.socket) -> socket.socket:
        """Accept exactly one connection; the listener is closed afterwards."""
        try:
            conn, address = listener.accept()
        finally:
            listener.close()
        conn.settimeout(self.timeout)
        logger.debug(f"Accepted data connection from {address[0]}:{address[1]}")
        return conn

    def connect_to(self, address: str, port: int) -> socket.socket:
        conn = socket.create_connection((address, port), timeout=self.timeout)
        logger.debug(f"Opened data connection to {address}:{port}")
        return conn

    def read(self, conn: socket.socket, size: int = CHUNK_SIZE) -> bytes:
        return conn.recv(size)

    def write(self, conn: socket.socket, data: bytes):
        conn.sendall(data)

    def close(self, conn: Optional[socket.socket]):
        if conn is None:
            return
        try:
            conn.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Not connected or already shut down
            pass
        conn.close()
