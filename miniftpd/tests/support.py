"""Shared test doubles."""
import socket
import threading


class FakeControl:
    """Records replies instead of writing them to a socket."""

    def __init__(self, local_address: str = "127.0.0.1"):
        self.local_address = local_address
        self.replies = []
        self.closed = False

    def send_reply(self, code, message=None):
        self.replies.append((code, message))

    def close(self):
        self.closed = True

    @property
    def codes(self):
        return [code for code, _ in self.replies]


class DataClient(threading.Thread):
    """Client side of a data connection, run on its own thread."""

    def __init__(self, port: int, payload: bytes = None, host: str = "127.0.0.1"):
        super().__init__(daemon=True)
        self.address = (host, port)
        self.payload = payload
        self.received = b""
        self.error = None
        self.sock = socket.create_connection(self.address, timeout=5)

    def run(self):
        try:
            if self.payload is not None:
                self.sock.sendall(self.payload)
                self.sock.shutdown(socket.SHUT_WR)
            chunks = []
            while True:
                chunk = self.sock.recv(65536)
                if not chunk:
                    break
                chunks.append(chunk)
            self.received = b"".join(chunks)
        except OSError as e:
            # Server may reset a connection it refused to use
            self.error = e
        finally:
            self.sock.close()
