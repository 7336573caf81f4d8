"""Per-connection session state and the login state machine."""
import logging
import os
from dataclasses import dataclass
from typing import Optional, Tuple, Union
from miniftpd.core.data_channel import DataChannel
from miniftpd.core.transport import Transport

logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"

Reply = Tuple[int, str]


@dataclass(frozen=True)
class Unauthenticated:
    """No username given yet."""


@dataclass(frozen=True)
class UsernameProvided:
    """USER accepted, waiting for PASS."""

    username: str


@dataclass(frozen=True)
class Authenticated:
    """Logged in; every command is available."""

    username: str
    password: str = ""

    @property
    def anonymous(self) -> bool:
        return self.username == ANONYMOUS


AuthState = Union[Unauthenticated, UsernameProvided, Authenticated]


class Session:
    """State owned by one control connection.

    Holds the login state, the working directory and the data channel for
    the next transfer. ``current_directory`` always equals ``base_directory``
    or lies below it; the transfer engine rejects any change that would
    break this rather than correcting it.
    """

    def __init__(self, base_directory: str, client_ip: str = "", transport: Optional[Transport] = None):
        base = os.path.abspath(base_directory)
        self.base_directory: str = base
        self.current_directory: str = base
        self.client_ip = client_ip
        self.auth: AuthState = Unauthenticated()
        self.data_channel = DataChannel(transport)

    @property
    def authenticated(self) -> bool:
        return isinstance(self.auth, Authenticated)

    @property
    def username(self):
        if isinstance(self.auth, (UsernameProvided, Authenticated)):
            return self.auth.username
        return None

    def user(self, argument: str) -> Reply:
        """Apply a USER command and return the reply to send."""
        if not argument:
            return 501, "Syntax error in parameters or arguments."

        if argument == ANONYMOUS:
            self.auth = Authenticated(ANONYMOUS)
            logger.info(f"Anonymous login from {self.client_ip}")
            return 230, "User logged in, proceed."

        if isinstance(self.auth, Unauthenticated):
            self.auth = UsernameProvided(argument)
            return 331, "User name okay, need password."

        # A second identity cannot be claimed
        return 550, "Requested action not taken."

    def password(self, argument: str) -> Reply:
        """Apply a PASS command and return the reply to send."""
        if not argument:
            return 501, "Syntax error in parameters or arguments."

        if self.username == ANONYMOUS:
            return 530, "Login incorrect."

        if isinstance(self.auth, Unauthenticated):
            return 332, "Need account for login."

        self.auth = Authenticated(self.auth.username, argument)
        logger.info(f"User {self.auth.username} logged in from {self.client_ip}")
        return 230, "User logged in, proceed."

    def close(self):
        """Release data channel resources at the end of the session."""
        self.data_channel.reset()
