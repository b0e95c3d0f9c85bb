import sys
import logging
from typing import Optional

import zklock.settings as settings
from zklock.log.handler import LokiHandler

LOG_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'


def setup_logging(debug: bool = False, lock_name: Optional[str] = None, identity: Optional[str] = None) -> None:
    """
    Configures the root logger for zklock.

    Logs go to stderr because stdout belongs to the child process. Without
    debug only warnings and errors are shown, so fatal lock events are always
    visible while routine progress stays quiet.

    :param debug: If True, log everything down to DEBUG level.
    :param lock_name: The lock name, used as a Loki label.
    :param identity: The lock owner identity, used as a Loki label.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if debug else logging.WARNING)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(console_handler)

    # kazoo is chatty at DEBUG; keep it to its own warnings.
    logging.getLogger("kazoo").setLevel(logging.DEBUG if debug else logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    if settings.LOKI_ENABLED:
        try:
            loki_handler = LokiHandler(
                url=settings.LOKI_URL,
                lock_name=lock_name or "",
                identity=identity or settings.IDENTITY,
                org_id=settings.LOKI_ORG_ID or None,
            )
            loki_handler.setLevel(logging.INFO)
            loki_handler.setFormatter(logging.Formatter('%(message)s'))
            root_logger.addHandler(loki_handler)
            # Loki receives INFO even when the console is quiet.
            root_logger.setLevel(logging.DEBUG if debug else logging.INFO)
            console_handler.setLevel(logging.DEBUG if debug else logging.WARNING)
        except Exception as e:
            root_logger.error(f"Failed to initialize Grafana Loki logging handler: {e}")
