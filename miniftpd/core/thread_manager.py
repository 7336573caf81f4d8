"""Worker threads for FTP sessions."""
import threading
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


class ThreadManager:
    """Runs each accepted control connection on a pool thread.

    This class provides:
    - Thread pool management with max worker limits
    - Per client address session limits
    - Tracking of running sessions for shutdown
    """

    def __init__(self, max_workers: int = 10, max_connections_per_ip: int = 5):
        """Initialize the thread manager.

        Args:
            max_workers: Maximum number of sessions served at once
            max_connections_per_ip: Maximum sessions allowed from a single IP
        """
        self.thread_pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ftp-session")
        self.max_connections_per_ip = max_connections_per_ip

        # Track active sessions by IP
        self.connections: Dict[str, int] = {}
        self.connections_lock = threading.Lock()

        self.futures: Dict[int, Future] = {}
        self.futures_lock = threading.Lock()

        logger.info(f"Thread manager initialized with max_workers={max_workers}, "
                    f"max_connections_per_ip={max_connections_per_ip}")

    def submit_connection(self, client_handler: Callable, client_ip: str, *args, **kwargs) -> bool:
        """Submit a session for handling.

        Args:
            client_handler: The function that runs the session
            client_ip: The client IP address
            *args: Additional arguments to pass to the client handler
            **kwargs: Additional keyword arguments to pass to the client handler

        Returns:
            True if the connection was accepted, False if rejected
        """
        with self.connections_lock:
            current_connections = self.connections.get(client_ip, 0)
            if current_connections >= self.max_connections_per_ip:
                logger.warning(f"Rejecting connection from {client_ip}: Too many connections "
                               f"({current_connections}/{self.max_connections_per_ip})")
                return False
            self.connections[client_ip] = current_connections + 1

        try:
            future = self.thread_pool.submit(
                self._connection_wrapper, client_handler, client_ip, *args, **kwargs
            )
        except RuntimeError as e:
            # Pool already shut down
            self._release(client_ip)
            logger.error(f"Failed to submit connection from {client_ip}: {str(e)}")
            return False

        with self.futures_lock:
            self.futures[id(future)] = future
        future.add_done_callback(self._forget)
        return True

    def _connection_wrapper(self, client_handler: Callable, client_ip: str, *args, **kwargs):
        try:
            return client_handler(*args, **kwargs)
        except Exception:
            logger.exception(f"Error in session handler for {client_ip}")
            raise
        finally:
            self._release(client_ip)

    def _release(self, client_ip: str):
        with self.connections_lock:
            self.connections[client_ip] = max(0, self.connections.get(client_ip, 1) - 1)
            if self.connections[client_ip] == 0:
                del self.connections[client_ip]

    def _forget(self, future: Future):
        with self.futures_lock:
            self.futures.pop(id(future), None)

    @property
    def active_sessions(self) -> int:
        with self.connections_lock:
            return sum(self.connections.values())

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """Stop accepting sessions and wait for running ones to finish."""
        logger.info("Shutting down thread manager")
        self.thread_pool.shutdown(wait=False)
        if wait:
            with self.futures_lock:
                pending = list(self.futures.values())
            for future in pending:
                try:
                    future.result(timeout=timeout)
                except Exception:
                    # Already logged by the session wrapper
                    continue
        logger.info("Thread manager shutdown complete")
