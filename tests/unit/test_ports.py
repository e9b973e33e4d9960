"""Free-port allocation and readiness polling"""
import time
import socket
import threading
from unittest.mock import MagicMock

import pytest

from kube_portforward.errors import PortAllocationError, ReadinessTimeoutError
from kube_portforward.ports import (
    POLL_INTERVAL,
    allocate_free_port,
    is_port_listening,
    wait_until_port_free,
    wait_until_port_listening,
)


def _listen(port):
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    server.bind(("127.0.0.1", port))
    server.listen()
    return server


@pytest.mark.unit
@pytest.mark.quick
def test_allocated_port_can_be_rebound():
    """The allocator releases the port, so binding it again succeeds."""
    port = allocate_free_port()

    assert 0 < port < 65536
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", port))


@pytest.mark.unit
@pytest.mark.quick
def test_two_allocations_are_both_bindable():
    """Successive allocations are valid ports; they are not required to differ."""
    first = allocate_free_port()
    second = allocate_free_port()

    for port in (first, second):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", port))


@pytest.mark.unit
def test_allocation_failure_raises(monkeypatch):
    """A failing bind surfaces as PortAllocationError."""
    fake_socket = MagicMock(name="socket")
    fake_socket.socket.return_value.__enter__.return_value.bind.side_effect = PermissionError("bind denied")
    monkeypatch.setattr("kube_portforward.ports.socket", fake_socket)

    with pytest.raises(PortAllocationError, match="bind denied"):
        allocate_free_port()


@pytest.mark.unit
@pytest.mark.quick
def test_free_port_returns_immediately():
    port = allocate_free_port()

    start = time.time()
    wait_until_port_free(port, timeout=2)

    assert time.time() - start < 1
    assert not is_port_listening(port)


@pytest.mark.unit
def test_wait_until_port_free_blocks_while_listening():
    """The poller keeps waiting while something accepts on the port."""
    port = allocate_free_port()
    server = _listen(port)
    threading.Timer(0.3, server.close).start()

    start = time.time()
    wait_until_port_free(port, timeout=5)

    assert time.time() - start >= 0.25


@pytest.mark.unit
def test_wait_until_port_listening_unblocks_after_bind():
    """Returns within a few polling intervals of a concurrent listener binding."""
    port = allocate_free_port()
    servers = []
    bound_at = []

    def bind_later():
        time.sleep(0.3)
        servers.append(_listen(port))
        bound_at.append(time.time())

    threading.Thread(target=bind_later, daemon=True).start()

    try:
        wait_until_port_listening(port, timeout=5)
        returned_at = time.time()
    finally:
        for server in servers:
            server.close()

    assert bound_at
    assert returned_at - bound_at[0] < POLL_INTERVAL * 10


@pytest.mark.unit
def test_wait_until_port_listening_times_out():
    port = allocate_free_port()

    with pytest.raises(ReadinessTimeoutError, match=str(port)):
        wait_until_port_listening(port, timeout=0.2)
