"""Command routing for one FTP session."""
import logging
from typing import Callable, Dict, Optional
from miniftpd.core.command import Command
from miniftpd.core.config import SYSTEM_NAME
from miniftpd.core.control import ControlConnection
from miniftpd.core.data_channel import PortSyntaxError, encode_pasv_address
from miniftpd.core.session import Session
from miniftpd.core.transfer import TransferEngine

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """Routes parsed commands to their handlers.

    USER and PASS are always accepted; every other verb, known or not,
    requires a completed login and gets a 530 otherwise. Verbs are matched
    exactly as received, so lower-case verbs are unknown.
    """

    def __init__(
        self,
        session: Session,
        engine: TransferEngine,
        control: ControlConnection,
        recorder=None,
        strict: bool = False,
        system_name: str = SYSTEM_NAME,
        pasv_address: Optional[str] = None,
    ):
        self.session = session
        self.engine = engine
        self.control = control
        self.recorder = recorder
        self.strict = strict
        self.system_name = system_name
        self.pasv_address = pasv_address

        self.routes: Dict[str, Callable[[str], Optional[bool]]] = {
            "CWD": engine.cwd,
            "SYST": self.syst,
            "CDUP": engine.cdup,
            "QUIT": self.quit,
            "DELE": engine.dele,
            "PWD": engine.pwd,
            "PASV": self.pasv,
            "PORT": self.port,
            "HELP": self.help,
            "NOOP": self.noop,
            "RETR": engine.retr,
            "STOR": engine.stor,
            "RMD": engine.rmd,
            "MKD": engine.mkd,
            "LIST": engine.list,
            "TYPE": self.type,
        }

    def dispatch(self, command: Command) -> bool:
        """Run one command.

        Returns:
            False once the session should end, True otherwise
        """
        if command.verb == "USER":
            self._login_reply(self.session.user(command.argument))
            return True
        if command.verb == "PASS":
            self._login_reply(self.session.password(command.argument))
            return True

        if not self.session.authenticated:
            self.control.send_reply(530, "Login incorrect.")
            return True

        handler = self.routes.get(command.verb)
        if handler is None:
            self.control.send_reply(500, "Unknown command.")
            return True

        return handler(command.argument) is not False

    def _login_reply(self, reply):
        code, message = reply
        if code == 230 and self.recorder is not None:
            self.recorder.login(username=self.session.username, client_ip=self.session.client_ip)
        self.control.send_reply(code, message)

    def syst(self, argument: str):
        self.control.send_reply(215, self.system_name)

    def help(self, argument: str):
        self.control.send_reply(200, "Help done.")

    def noop(self, argument: str):
        self.control.send_reply(200, "Command okay.")

    def type(self, argument: str):
        # Transfers are always binary
        self.control.send_reply(200, "Command okay.")

    def pasv(self, argument: str):
        bind_address = self.control.local_address
        try:
            port = self.session.data_channel.enter_passive(bind_address)
        except OSError as e:
            logger.error(f"Could not open passive listener on {bind_address}: {e}")
            self.control.send_reply(425, "Can't open data connection.")
            return

        address = self.pasv_address or bind_address
        code = 227 if self.strict else 200
        self.control.send_reply(code, f"Entering Passive Mode ({encode_pasv_address(address, port)}).")

    def port(self, argument: str):
        try:
            address, port = self.session.data_channel.enter_active(argument)
        except PortSyntaxError as e:
            logger.debug(f"Bad PORT argument from {self.session.client_ip}: {e}")
            self.control.send_reply(501, "Syntax error in parameters or arguments.")
            return
        logger.debug(f"Active mode for {self.session.client_ip}: {address}:{port}")
        self.control.send_reply(200, "Entering Active Mode.")

    def quit(self, argument: str) -> bool:
        self.control.send_reply(221, "Service closing control connection.")
        self.control.close()
        return False
