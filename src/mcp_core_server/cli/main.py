"""CLI entrypoint: take the instance lock, then run the server."""

from __future__ import annotations

import logging
import signal
import sys
import threading
from collections.abc import Callable

import requests
from dotenv import find_dotenv, load_dotenv

from mcp_core_server.api.client import HTTPClientFactory
from mcp_core_server.cli.parser import parse_arguments
from mcp_core_server.core.config import ServerConfig
from mcp_core_server.core.constants import (
    EXIT_ALREADY_RUNNING,
    EXIT_CONFIGURATION_ERROR,
    EXIT_KILL_FAILURE,
    EXIT_LOCK_IO_ERROR,
    EXIT_OK,
    EXIT_STARTUP_FAILURE,
)
from mcp_core_server.core.exceptions import (
    ConfigurationError,
    KillFailureError,
    LockContentionError,
    LockIOError,
    MCPCoreError,
)
from mcp_core_server.core.locks import AcquireStatus, InstanceLock
from mcp_core_server.core.logging import setup_logging


def _bootstrap_dotenv() -> bool:
    """Load .env variables found from the working directory upwards.

    Runs before configuration and logging are built so .env values such as
    LOG_LEVEL take effect. Variables already in the environment win.
    """
    dotenv_path = find_dotenv(usecwd=True)
    return bool(dotenv_path) and load_dotenv(dotenv_path)


def _exit_code_for(error: MCPCoreError) -> int:
    if isinstance(error, LockIOError):
        return EXIT_LOCK_IO_ERROR
    if isinstance(error, (KillFailureError, LockContentionError)):
        return EXIT_KILL_FAILURE
    if isinstance(error, ConfigurationError):
        return EXIT_CONFIGURATION_ERROR
    return EXIT_STARTUP_FAILURE


def run_probe(config: ServerConfig, logger: logging.Logger) -> int:
    """Request the probe URL through a client pinned to the configured certificate."""
    if config.certificate_file is None or config.probe_url is None:
        raise ConfigurationError("Startup probe requires both a certificate file and a probe URL", field="probe_url")
    try:
        certificate_pem = config.certificate_file.read_bytes()
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read certificate file '{config.certificate_file}'", field="certificate", details=str(e)
        ) from e

    factory = HTTPClientFactory(
        clock_skew_tolerance=config.transport.clock_skew_tolerance,
        minimum_tls_version=config.transport.minimum_tls_version,
    )
    with factory.new_client_for_self_signed_tls_server(certificate_pem) as client:
        try:
            response = client.do(requests.Request("GET", config.probe_url))
        except requests.RequestException as e:
            logger.error("Probe request to %s failed: %s", config.probe_url, e)
            return EXIT_STARTUP_FAILURE
    logger.info("Probe %s returned HTTP %d", config.probe_url, response.status_code)
    return EXIT_OK if response.ok else EXIT_STARTUP_FAILURE


def wait_for_shutdown(logger: logging.Logger) -> int:
    """Hold the lock until SIGINT or SIGTERM."""
    stop = threading.Event()

    def _handle(signum, frame):
        del frame
        logger.info("Received signal %d, shutting down", signum)
        stop.set()

    previous = {sig: signal.signal(sig, _handle) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        logger.info("MCP Core Server running; press Ctrl+C to stop")
        while not stop.wait(1.0):
            pass
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    return EXIT_OK


def main(
    argv: list[str] | None = None,
    *,
    run: Callable[[], int] | None = None,
    instance_lock: InstanceLock | None = None,
) -> int:
    """Acquire the single-instance lock, run the server, release the lock.

    Args:
        argv: Command-line arguments (default: sys.argv[1:])
        run: Follow-on step executed while the lock is held; returns an exit code
        instance_lock: Pre-built lock, mainly for tests

    Returns:
        Process exit code
    """
    args = parse_arguments(argv)
    dotenv_loaded = _bootstrap_dotenv()
    config = ServerConfig.from_args(args)
    logger = setup_logging(config.log.level, config.log.format)
    if dotenv_loaded:
        logger.debug(".env file found and loaded")

    lock = instance_lock or InstanceLock(
        lock_path=config.lock.lock_file,
        poll_attempts=config.lock.poll_attempts,
        poll_interval_seconds=config.lock.poll_interval_seconds,
        reclaim_unconfirmed=config.lock.reclaim_unconfirmed,
        logger=logging.getLogger("mcp_core_server.lock"),
    )

    try:
        status = lock.acquire(kill_existing=config.lock.kill_existing)
    except MCPCoreError as e:
        logger.error("Failed to acquire instance lock: %s", e)
        return _exit_code_for(e)

    if status == AcquireStatus.REJECTED:
        print("MCP Core Server is already running. Only one instance is allowed.", file=sys.stderr)
        return EXIT_ALREADY_RUNNING

    try:
        if run is not None:
            return run()
        if config.probe_url:
            return run_probe(config, logger)
        return wait_for_shutdown(logger)
    except MCPCoreError as e:
        logger.error("Failed to initialize MCP Core Server: %s", e)
        return _exit_code_for(e)
    finally:
        try:
            lock.release()
        except LockIOError as e:
            logger.warning("Failed to release instance lock on exit: %s", e)
