"""Logging configuration for the FTP server."""
import logging
import os
import re
import unicodedata
from logging.handlers import RotatingFileHandler
from datetime import datetime
from rich.logging import RichHandler
from miniftpd.core.config import LOG_LEVEL, LOG_FILE


class SafeLogFormatter(logging.Formatter):
    """Formatter that strips control characters from client supplied text."""

    def format(self, record):
        if record.msg and isinstance(record.msg, str):
            record.msg = sanitize_text(record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                sanitize_text(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        return sanitize_text(super().format(record), keep_newlines=True)


class SafeLogFilter(logging.Filter):
    """Filter that drops oversized or control-character heavy records."""

    def filter(self, record):
        if not isinstance(getattr(record, 'msg', None), str):
            return True

        if len(record.msg) > 4000:
            return False

        control_chars = sum(1 for c in record.msg if ord(c) < 32 or ord(c) == 127)
        if record.msg and control_chars / len(record.msg) > 0.3:  # 30% threshold
            return False

        return True


class TimestampedRotatingFileHandler(RotatingFileHandler):
    """Rotating file handler that adds timestamps to backup filenames."""

    def doRollover(self):
        """Rename the current log to <root>.<timestamp><ext> and reopen."""
        if self.stream:
            self.stream.close()
            self.stream = None

        root, ext = os.path.splitext(self.baseFilename)
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        backup_filename = f"{root}.{timestamp}{ext}"

        if os.path.exists(backup_filename):
            os.remove(backup_filename)

        if os.path.exists(self.baseFilename):
            os.rename(self.baseFilename, backup_filename)

        self._prune_backups(root, ext)
        self.stream = self._open()

    def _prune_backups(self, root: str, ext: str):
        if self.backupCount <= 0:
            return
        directory = os.path.dirname(root) or '.'
        prefix = os.path.basename(root) + '.'
        backups = sorted(
            name for name in os.listdir(directory)
            if name.startswith(prefix) and name.endswith(ext) and name != os.path.basename(self.baseFilename)
        )
        for name in backups[:-self.backupCount]:
            os.remove(os.path.join(directory, name))


def sanitize_text(text, keep_newlines: bool = False):
    """Replace control and non-printable characters with '.'."""
    if not isinstance(text, str):
        return text

    pattern = r'[\x00-\x09\x0B-\x1F\x7F]' if keep_newlines else r'[\x00-\x1F\x7F]'
    sanitized = re.sub(pattern, '.', text)

    result = []
    for c in sanitized:
        cat = unicodedata.category(c)
        # Surrogates and private use characters are left alone
        if cat.startswith('C') and cat not in ('Cs', 'Co') and not (keep_newlines and c == '\n'):
            result.append('.')
        else:
            result.append(c)
    return ''.join(result)


def setup_logging(level: str = LOG_LEVEL, log_file: str = LOG_FILE):
    """Configure logging for the application."""
    log_dir = os.path.dirname(log_file)
    if log_dir and not os.path.exists(log_dir):
        os.makedirs(log_dir)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    safe_filter = SafeLogFilter()
    formatter = SafeLogFormatter('%(asctime)s - %(levelname)s - %(name)s - %(message)s',
                                 datefmt='%Y-%m-%d %H:%M:%S')

    # 5MB per file
    file_handler = TimestampedRotatingFileHandler(
        log_file,
        maxBytes=5242880,
        backupCount=10
    )
    file_handler.setFormatter(formatter)
    file_handler.addFilter(safe_filter)

    console_handler = RichHandler(show_path=False, rich_tracebacks=True)
    console_handler.setFormatter(SafeLogFormatter('%(name)s - %(message)s'))
    console_handler.addFilter(safe_filter)

    root_logger.handlers = []  # Clear any existing handlers
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info("Logging system initialized")

    return logger
