"""FTP server: accept loop and per-connection session loop."""
import os
import socket
import logging
import threading
from typing import Optional
from miniftpd.core.command import Command, parse_command
from miniftpd.core.control import ControlConnection, ControlConnectionClosed
from miniftpd.core.dispatcher import CommandDispatcher
from miniftpd.core.filesystem import LocalFileSystem
from miniftpd.core.session import Session
from miniftpd.core.thread_manager import ThreadManager
from miniftpd.core.transfer import TransferEngine
from miniftpd.core.transport import Transport
from miniftpd.core.config import (
    HOST, FTP_PORT, FTP_ROOT, SYSTEM_NAME, PASV_ADDRESS, DATA_TIMEOUT, RFC_STRICT,
    MAX_THREADS, MAX_CONNECTIONS_PER_IP, CONNECTION_TIMEOUT, DEBUG
)

logger = logging.getLogger(__name__)


class FTPServer:
    """Serves a directory tree over FTP.

    Every accepted control connection gets its own Session, TransferEngine
    and CommandDispatcher running on a ThreadManager worker; sessions share
    nothing but the read-only server settings.
    """

    def __init__(
        self,
        root: str = FTP_ROOT,
        host: str = HOST,
        port: int = FTP_PORT,
        recorder=None,
        strict: bool = RFC_STRICT,
        system_name: str = SYSTEM_NAME,
        pasv_address: Optional[str] = PASV_ADDRESS,
        connection_timeout: Optional[float] = CONNECTION_TIMEOUT,
        data_timeout: Optional[float] = DATA_TIMEOUT,
        thread_manager: Optional[ThreadManager] = None,
        debug: bool = DEBUG,
    ):
        """Initialize the FTP server.

        Args:
            root: Directory served as "/" to clients
            host: The host address to bind to
            port: The port to listen on, 0 for an ephemeral port
            recorder: Optional audit recorder for logins and transfers
            strict: Reply 227 to PASV and 150 before data connections
            system_name: Text of the SYST reply
            pasv_address: Address advertised in PASV replies
            connection_timeout: Idle seconds before a control connection is dropped
            data_timeout: Seconds allowed for data connection setup and I/O
            thread_manager: Worker pool for sessions
            debug: Log every command at INFO level

        Raises:
            FileNotFoundError: ``root`` is not an existing directory
        """
        if not os.path.isdir(root):
            raise FileNotFoundError(f"FTP server can't open specified directory: {root}")

        self.root = os.path.abspath(root)
        self.host = host
        self.port = port
        self.recorder = recorder
        self.strict = strict
        self.system_name = system_name
        self.pasv_address = pasv_address
        self.connection_timeout = connection_timeout
        self.data_timeout = data_timeout
        self.debug = debug
        self.filesystem = LocalFileSystem()
        self.thread_manager = thread_manager or ThreadManager(
            max_workers=MAX_THREADS,
            max_connections_per_ip=MAX_CONNECTIONS_PER_IP
        )

        self.server_socket = None
        self.ready = threading.Event()
        self._stop_event = threading.Event()
        logger.debug(f"Initialized {self.__class__.__name__} for {self.root} on {host}:{port}")

    def start(self):
        """Listen and serve until stop() is called."""
        try:
            self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self.server_socket.bind((self.host, self.port))
            self.server_socket.listen(100)
            # Poll so stop() is noticed
            self.server_socket.settimeout(1.0)
            self.port = self.server_socket.getsockname()[1]
        except OSError as e:
            logger.error(f"Failed to start FTP server: {str(e)}")
            if self.server_socket:
                self.server_socket.close()
            raise

        logger.info(f"FTP server listening on {self.host}:{self.port}, serving {self.root}")
        self.ready.set()

        try:
            while not self._stop_event.is_set():
                try:
                    client_socket, client_address = self.server_socket.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if self._stop_event.is_set():
                        break
                    logger.error(f"Error accepting connection: {str(e)}")
                    continue

                client_socket.settimeout(self.connection_timeout)
                if not self.thread_manager.submit_connection(
                    self._handle_client, client_address[0], client_socket, client_address[0]
                ):
                    client_socket.close()
        finally:
            self.server_socket.close()
            logger.info("FTP server stopped")

    def stop(self):
        """Stop accepting connections; running sessions finish on their own."""
        self._stop_event.set()

    def _handle_client(self, client_socket: socket.socket, client_ip: str):
        """Run one session until QUIT, disconnect or a control channel error."""
        control = ControlConnection(client_socket)
        session = Session(self.root, client_ip, Transport(self.data_timeout))
        engine = TransferEngine(session, control, self.filesystem, self.recorder, self.strict)
        dispatcher = CommandDispatcher(
            session, engine, control,
            recorder=self.recorder,
            strict=self.strict,
            system_name=self.system_name,
            pasv_address=self.pasv_address,
        )
        logger.info(f"New connection from {client_ip}")

        try:
            control.send_reply(220, "Service ready for new user.")
            while True:
                command = parse_command(control.read_line())
                self._log_command(client_ip, command)
                if not dispatcher.dispatch(command):
                    break
        except ControlConnectionClosed:
            logger.info(f"Client {client_ip} disconnected")
        except socket.timeout:
            logger.info(f"Control connection from {client_ip} timed out")
        except OSError as e:
            logger.warning(f"Control connection error for {client_ip}: {str(e)}")
        except Exception as e:
            logger.exception(f"Error handling client {client_ip}: {str(e)}")
        finally:
            session.close()
            control.close()
            logger.info(f"Session for {client_ip} closed")

    def _log_command(self, client_ip: str, command: Command):
        argument = "****" if command.verb == "PASS" and command.argument else command.argument
        level = logging.INFO if self.debug else logging.DEBUG
        logger.log(level, f"Client {client_ip}: '{command.verb}' {argument}".rstrip())
