"""Configuration management for the FTP server."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent.parent


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


# Server settings
HOST = os.getenv('HOST', '0.0.0.0')
FTP_PORT = int(os.getenv('FTP_PORT', 21))
FTP_ROOT = os.getenv('FTP_ROOT', str(BASE_DIR / 'ftproot'))
SYSTEM_NAME = os.getenv('SYSTEM_NAME', 'UNIX Type: L8')

# Data channel settings
PASV_ADDRESS = os.getenv('PASV_ADDRESS') or None  # Advertised in PASV replies
DATA_TIMEOUT = float(os.getenv('DATA_TIMEOUT', 30))  # Accept/connect/transfer timeout in seconds
RFC_STRICT = _env_flag('RFC_STRICT')  # 227 for PASV and 150 before transfers

# Thread management settings
MAX_THREADS = int(os.getenv('MAX_THREADS', 10))  # Maximum worker threads
MAX_CONNECTIONS_PER_IP = int(os.getenv('MAX_CONNECTIONS_PER_IP', 5))  # Max sessions from a single IP
CONNECTION_TIMEOUT = int(os.getenv('CONNECTION_TIMEOUT', 300))  # Idle seconds on the control connection

# Audit database settings
AUDIT_ENABLED = _env_flag('AUDIT_ENABLED', 'true')
DATABASE_URL = os.getenv('DATABASE_URL', f'sqlite:///{BASE_DIR}/miniftpd.db')

# Logging settings
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FILE = os.getenv('LOG_FILE', str(BASE_DIR / 'miniftpd.log'))
DEBUG = _env_flag('DEBUG')
