import logging
import signal
import sys
import threading
import time
from miniftpd.core.config import (
    HOST, FTP_PORT, FTP_ROOT, AUDIT_ENABLED, DATABASE_URL, RFC_STRICT,
    MAX_THREADS, MAX_CONNECTIONS_PER_IP, CONNECTION_TIMEOUT, DATA_TIMEOUT
)
from miniftpd.core.ftp_server import FTPServer
from miniftpd.core.logging_setup import setup_logging
from miniftpd.core.thread_manager import ThreadManager

logger = logging.getLogger(__name__)

server = None


def periodic_session_stats(thread_manager: ThreadManager):
    """Periodically log session statistics."""
    while True:
        time.sleep(60)
        logger.info(f"Session stats: {thread_manager.active_sessions} active sessions, "
                    f"{len(thread_manager.connections)} unique IPs, "
                    f"{len(threading.enumerate())} total threads")


def signal_handler(sig, frame):
    """Handle termination signals gracefully."""
    logger.info("Received shutdown signal, shutting down...")
    if server is not None:
        server.stop()


def main():
    """Main entry point for the application."""
    global server

    setup_logging()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    recorder = None
    if AUDIT_ENABLED:
        from miniftpd.database.models import init_db
        from miniftpd.database.audit import AuditRecorder

        init_db(DATABASE_URL)
        recorder = AuditRecorder()
        logger.info("Audit database initialized successfully")

    logger.info(f"Thread management: max_threads={MAX_THREADS}, "
                f"max_connections_per_ip={MAX_CONNECTIONS_PER_IP}, "
                f"connection_timeout={CONNECTION_TIMEOUT}s, data_timeout={DATA_TIMEOUT}s")
    if RFC_STRICT:
        logger.info("Strict RFC replies enabled (227 for PASV, 150 before transfers)")

    try:
        server = FTPServer(root=FTP_ROOT, host=HOST, port=FTP_PORT, recorder=recorder)
    except FileNotFoundError as e:
        logger.error(str(e))
        sys.exit(1)

    stats_thread = threading.Thread(
        target=periodic_session_stats,
        args=(server.thread_manager,),
        name="Session-Stats-Monitor",
        daemon=True
    )
    stats_thread.start()

    try:
        server.start()
    finally:
        server.thread_manager.shutdown(wait=False)


if __name__ == "__main__":
    main()
