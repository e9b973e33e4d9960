"""
Local port helpers: free-port allocation and readiness polling.

Readiness is observed by attempting a TCP connection to localhost, the same
check a client of the tunnel would make.
"""
import time
import socket
import logging

from kube_portforward.errors import PortAllocationError, ReadinessTimeoutError

logger = logging.getLogger(__name__)

# Pause between connection attempts
POLL_INTERVAL = 0.05

# Connect timeout for a single attempt; localhost refuses immediately when
# nothing is listening
DIAL_TIMEOUT = 0.1

LOCALHOST = "127.0.0.1"


def allocate_free_port():
    """
    Ask the OS for an unused ephemeral TCP port.

    The socket is closed before returning, so the port is not reserved.

    Returns:
        int: Port number

    Raises:
        PortAllocationError: If binding to port 0 fails
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("", 0))
            port = sock.getsockname()[1]
    except OSError as e:
        raise PortAllocationError(f"Error finding unused port: {e}") from e

    logger.debug(f"Allocated local port {port}")
    return port


def is_port_listening(port, host=LOCALHOST):
    """Return True if a TCP connection to host:port succeeds."""
    try:
        with socket.create_connection((host, port), timeout=DIAL_TIMEOUT):
            return True
    except OSError:
        return False


def _wait_for(port, listening, timeout, description):
    start_time = time.time()
    attempts = 0

    while is_port_listening(port) != listening:
        attempts += 1
        if timeout is not None and time.time() - start_time >= timeout:
            raise ReadinessTimeoutError(
                f"Local port {port} not {description} after {timeout}s ({attempts} attempts)"
            )
        time.sleep(POLL_INTERVAL)

    logger.debug(f"Local port {port} {description} after {attempts} retries")


def wait_until_port_free(port, timeout=None):
    """
    Block while something accepts connections on localhost:port.

    Args:
        port: Local port number
        timeout: Maximum wait in seconds (default: None, wait forever)

    Raises:
        ReadinessTimeoutError: If timeout is set and elapses
    """
    _wait_for(port, listening=False, timeout=timeout, description="free")


def wait_until_port_listening(port, timeout=None):
    """
    Block until something accepts connections on localhost:port.

    Args:
        port: Local port number
        timeout: Maximum wait in seconds (default: None, wait forever)

    Raises:
        ReadinessTimeoutError: If timeout is set and elapses
    """
    _wait_for(port, listening=True, timeout=timeout, description="listening")
