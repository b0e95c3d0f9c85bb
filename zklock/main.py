import sys
import logging
import argparse
from typing import List, Optional

import setproctitle

from zklock.config import LockConfig
from zklock.errors import CoordinationError
from zklock.log import setup_logging
from zklock.models import EXIT_FAILURE, EXIT_STARTUP_ERROR
from zklock.supervisor import LockRunner

log = logging.getLogger("zklock")


def build_parser() -> argparse.ArgumentParser:
    """Builds the zklock command-line parser. Unset options fall back to settings."""
    parser = argparse.ArgumentParser(
        prog="zklock",
        description="Run a command while holding a cluster-wide ZooKeeper lock.",
    )
    parser.add_argument("-zk", "--zookeeper", metavar="ENDPOINTS",
                        help="zookeeper endpoints joined by ','")
    parser.add_argument("-p", "--prefix", metavar="PATH", help="root node the locks live under")
    parser.add_argument("-i", "--identity", help="owner identity stored in the lock node (default: host name)")
    parser.add_argument("-t", "--session-timeout", type=int, metavar="MS", help="session timeout in milliseconds")

    wait_group = parser.add_mutually_exclusive_group()
    wait_group.add_argument("-n", "--no-wait", action="store_true", help="fail rather than wait (default)")
    wait_group.add_argument("-w", "--wait", action="store_true", help="wait for the lock to be released")
    parser.add_argument("--wait-timeout", type=float, metavar="SEC", help="give up waiting after SEC seconds")

    parser.add_argument("-a", dest="sleep_after", type=float, metavar="SEC",
                        help="sleep after command was executed in seconds")
    parser.add_argument("-b", dest="sleep_before", type=float, metavar="SEC", help="sleep before lock in seconds")
    parser.add_argument("--poll-interval", type=float, metavar="SEC", help="lock check interval in seconds")
    parser.add_argument("-k", "--dont-kill", action="store_true", help="don't kill subprocess if something wrong")
    parser.add_argument("--kill-grace", type=float, metavar="SEC",
                        help="send SIGTERM and wait SEC seconds before SIGKILL")
    parser.add_argument("--kill-tree", action="store_true", help="also kill the subprocess's descendants")
    parser.add_argument("-e", "--propagate-exit-code", action="store_true",
                        help="exit with the subprocess's exit code")
    parser.add_argument("-d", "--debug", action="store_true", help="debug")

    parser.add_argument("lock_name", metavar="lockName")
    parser.add_argument("command", nargs=argparse.REMAINDER, metavar="command [args...]")
    return parser


def parse_config(argv: Optional[List[str]] = None) -> LockConfig:
    """Parses the command line into a LockConfig, exiting with usage on error."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.error("a command to run is required")
    try:
        return LockConfig.from_args(args)
    except ValueError as e:
        parser.error(str(e))


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the zklock command."""
    config = parse_config(argv)
    setup_logging(config.debug, config.lock_name, config.identity)
    setproctitle.setproctitle(f"zklock [{config.lock_name}]")
    log.debug(f"Args: {config.lock_name} {config.command}")

    try:
        return LockRunner(config).run()
    except CoordinationError as e:
        log.critical(f"ZooKeeper error: {e}")
        return EXIT_STARTUP_ERROR
    except KeyboardInterrupt:
        log.warning("Interrupted before the command was started.")
        return EXIT_FAILURE
    finally:
        logging.shutdown()


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
