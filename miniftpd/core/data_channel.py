"""PASV/PORT negotiation and data connection establishment."""
import logging
import socket
from dataclasses import dataclass
from typing import Optional, Tuple, Union
from miniftpd.core.transport import Transport

logger = logging.getLogger(__name__)


class DataConnectionError(Exception):
    """A data connection could not be opened (reply 425)."""


class PortSyntaxError(ValueError):
    """PORT argument is not six comma separated byte values (reply 501)."""


@dataclass(frozen=True)
class NoMode:
    """Neither PASV nor PORT negotiated."""


@dataclass(frozen=True)
class ActiveMode:
    """Server connects out to the client."""

    address: str
    port: int


@dataclass(frozen=True)
class PassiveMode:
    """Client connects to a listener opened by PASV."""

    listener: socket.socket
    port: int


TransferMode = Union[NoMode, ActiveMode, PassiveMode]


def parse_port_argument(argument: str) -> Tuple[str, int]:
    """Decode ``h1,h2,h3,h4,p1,p2`` into an IPv4 address and port.

    Raises:
        PortSyntaxError: Wrong token count, non-numeric or out of range value
    """
    tokens = [token.strip() for token in argument.split(',')]
    if len(tokens) != 6:
        raise PortSyntaxError(f"Expected 6 values, got {len(tokens)}")

    octets = []
    for token in tokens:
        if not (token.isascii() and token.isdigit()):
            raise PortSyntaxError(f"Not a number: {token!r}")
        value = int(token)
        if value > 255:
            raise PortSyntaxError(f"Out of range: {value}")
        octets.append(value)

    address = '.'.join(str(octet) for octet in octets[:4])
    port = octets[4] * 256 + octets[5]
    return address, port


def encode_pasv_address(address: str, port: int) -> str:
    """Encode an IPv4 address and port as ``h1,h2,h3,h4,p1,p2``."""
    return f"{address.replace('.', ',')},{port // 256},{port % 256}"


class DataChannel:
    """Owns the session's transfer mode and opens data connections.

    Only one mode is live at a time. Entering a mode releases the previous
    one, and establishing a connection consumes the mode, so every transfer
    needs its own PASV or PORT.
    """

    def __init__(self, transport: Optional[Transport] = None):
        self.transport = transport or Transport()
        self.mode: TransferMode = NoMode()

    def enter_passive(self, bind_address: str) -> int:
        """Open a fresh listener on an ephemeral port.

        Args:
            bind_address: Local address to listen on

        Returns:
            The listening port
        """
        self.reset()
        port, listener = self.transport.listen_on_ephemeral_port(bind_address)
        self.mode = PassiveMode(listener, port)
        return port

    def enter_active(self, argument: str) -> Tuple[str, int]:
        """Parse a PORT argument and switch to active mode.

        The current mode is left untouched when the argument is malformed.
        """
        address, port = parse_port_argument(argument)
        self.reset()
        self.mode = ActiveMode(address, port)
        return address, port

    def establish(self) -> socket.socket:
        """Open the data connection for one transfer.

        Raises:
            DataConnectionError: No mode negotiated, or connect/accept failed
        """
        mode = self.mode
        self.mode = NoMode()

        if isinstance(mode, ActiveMode):
            try:
                return self.transport.connect_to(mode.address, mode.port)
            except OSError as e:
                raise DataConnectionError(f"Connect to {mode.address}:{mode.port} failed: {e}") from e

        if isinstance(mode, PassiveMode):
            try:
                return self.transport.accept(mode.listener)
            except OSError as e:
                raise DataConnectionError(f"Accept on port {mode.port} failed: {e}") from e

        raise DataConnectionError("No data connection mode negotiated")

    def reset(self):
        """Drop the current mode, closing a pending passive listener."""
        if isinstance(self.mode, PassiveMode):
            logger.debug(f"Closing stale passive listener on port {self.mode.port}")
            self.mode.listener.close()
        self.mode = NoMode()
