"""
Default configuration for zklock.

Every value here can be overridden through the environment (or a `.env` file
in the working directory) and most of them again on the command line.
"""

import os
import socket
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _as_bool(value: str) -> bool:
    return value.lower() in ('true', '1', 't', 'yes', 'y')


def default_identity() -> str:
    """Returns the host name, preferring the environment over a syscall."""
    return os.getenv('COMPUTERNAME') or os.getenv('HOSTNAME') or socket.gethostname()


#* --- ZooKeeper Connection ---
ZOOKEEPER_HOSTS = os.getenv("ZKLOCK_HOSTS", "localhost")
SESSION_TIMEOUT_MS = int(os.getenv("ZKLOCK_SESSION_TIMEOUT_MS", "4000"))
CONNECT_TIMEOUT = float(os.getenv("ZKLOCK_CONNECT_TIMEOUT", "15"))  # seconds

#* --- Lock Settings ---
ROOT_PATH = os.getenv("ZKLOCK_ROOT", "/zklock")
IDENTITY = os.getenv("ZKLOCK_IDENTITY") or default_identity()
NO_WAIT = not _as_bool(os.getenv("ZKLOCK_WAIT", "False"))
WAIT_TIMEOUT = float(os.getenv("ZKLOCK_WAIT_TIMEOUT", "0"))  # 0 waits forever
POLL_INTERVAL = float(os.getenv("ZKLOCK_POLL_INTERVAL", "1.0"))  # seconds

#* --- Child Process ---
SLEEP_BEFORE = float(os.getenv("ZKLOCK_SLEEP_BEFORE", "0"))
SLEEP_AFTER = float(os.getenv("ZKLOCK_SLEEP_AFTER", "0"))
DONT_KILL = _as_bool(os.getenv("ZKLOCK_DONT_KILL", "False"))
KILL_GRACE_PERIOD = float(os.getenv("ZKLOCK_KILL_GRACE_PERIOD", "0"))  # seconds before SIGKILL
KILL_TREE = _as_bool(os.getenv("ZKLOCK_KILL_TREE", "False"))
PROPAGATE_EXIT_CODE = _as_bool(os.getenv("ZKLOCK_PROPAGATE_EXIT_CODE", "False"))

#* --- Logging ---
DEBUG = _as_bool(os.getenv("ZKLOCK_DEBUG", "False"))
LOG_BUFFER_FLUSH_INTERVAL = 10

# Grafana Loki (for observability across the cluster)
LOKI_ENABLED = _as_bool(os.getenv("LOKI_ENABLED", "False"))
LOKI_URL = os.getenv("LOKI_URL", "http://localhost:3100")
LOKI_ORG_ID = os.getenv("LOKI_ORG_ID", "")
