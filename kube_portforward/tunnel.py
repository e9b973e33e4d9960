"""
Background tunnel from a local port to a pod port.

The kubernetes client opens port-forward streams as in-process sockets rather
than binding a local port, so the tunnel owns the local listener: every
accepted connection gets its own port-forward stream to the pod and bytes are
relayed in both directions until either side closes.
"""
import socket
import logging
import threading

from kubernetes.stream import portforward

from kube_portforward.errors import (
    PortForwardError,
    ReadinessTimeoutError,
    TransportSetupError,
    TunnelRuntimeError,
)
from kube_portforward.ports import LOCALHOST

logger = logging.getLogger(__name__)

# How often the accept loop checks for stop()
ACCEPT_TIMEOUT = 0.5
BUFFER_SIZE = 64 * 1024
# Upper bound on waiting for the client-to-pod relay after the pod side closes
RELAY_JOIN_TIMEOUT = 5


def _relay(src, dst):
    """Copy bytes from src to dst until src closes, then half-close dst."""
    try:
        while True:
            chunk = src.recv(BUFFER_SIZE)
            if not chunk:
                break
            dst.sendall(chunk)
    except OSError as e:
        logger.debug(f"Relay ended: {e}")
    finally:
        try:
            dst.shutdown(socket.SHUT_WR)
        except OSError:
            pass


class Tunnel:
    """
    Forward one local port to one port on a pod.

    Usage:
        tunnel = Tunnel(core_v1, target, local_port)
        tunnel.start()
        tunnel.wait_ready()
        ...
        tunnel.stop()

    Any failure is recorded on `error` and stops the tunnel. Nothing is
    retried.
    """

    def __init__(self, core_v1, target, local_port, out_stream=None, host=LOCALHOST):
        """
        Args:
            core_v1: Kubernetes CoreV1Api client used to open port-forward streams
            target: ResolvedTarget (pod name, namespace and target port)
            local_port: Local port to listen on
            out_stream: Writable text stream for forwarding messages (default: None, suppressed)
            host: Local address to bind (default: 127.0.0.1)
        """
        self.target = target
        self.local_port = int(local_port)
        self.host = host
        self.error = None
        self._core_v1 = core_v1
        self._out_stream = out_stream
        self._server = None
        self._thread = None
        self._listening = False
        self._active_connections = 0
        self._lock = threading.Lock()
        self._started = threading.Event()
        self._stopped = threading.Event()

    @property
    def remote_port(self):
        return int(self.target.target_port)

    @property
    def active_connections(self):
        with self._lock:
            return self._active_connections

    @property
    def is_running(self):
        return self._thread is not None and self._thread.is_alive() and not self._stopped.is_set()

    def _write(self, message):
        if self._out_stream is None:
            return
        self._out_stream.write(message + "\n")
        self._out_stream.flush()

    def _fail(self, error):
        if self.error is None:
            self.error = error
        logger.error(f"❌ {error}")
        self.stop()

    def start(self):
        """Start the tunnel thread. Returns immediately; use wait_ready() to block."""
        if self._thread is not None:
            raise TransportSetupError("Tunnel already started")

        self._thread = threading.Thread(
            target=self._serve,
            name=f"tunnel-{self.local_port}",
            daemon=True
        )
        self._thread.start()
        return self

    def wait_ready(self, timeout=None):
        """
        Block until the local port is listening.

        Args:
            timeout: Maximum wait in seconds (default: None, wait forever)

        Raises:
            ReadinessTimeoutError: If timeout elapses first
            TransportSetupError: If the local port could not be bound
        """
        if not self._started.wait(timeout):
            raise ReadinessTimeoutError(f"Tunnel on local port {self.local_port} not ready after {timeout}s")
        if self.error is not None:
            raise self.error
        if not self._listening:
            raise TransportSetupError(f"Tunnel on local port {self.local_port} stopped before it was ready")

    def stop(self):
        """Stop accepting connections. Active relays end when either side closes."""
        self._stopped.set()
        self._started.set()

    def join(self, timeout=None):
        """Wait for the accept loop to exit."""
        if self._thread is not None:
            self._thread.join(timeout)

    def raise_for_error(self):
        if self.error is not None:
            raise self.error

    def _bind(self):
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            server.bind((self.host, self.local_port))
            server.listen()
        except OSError as e:
            server.close()
            raise TransportSetupError(f"Unable to listen on {self.host}:{self.local_port}: {e}") from e
        server.settimeout(ACCEPT_TIMEOUT)
        return server

    def _serve(self):
        try:
            self._server = self._bind()
        except TransportSetupError as e:
            self._fail(e)
            return

        self._write(f"Forwarding from {self.host}:{self.local_port} -> {self.remote_port}")
        logger.debug(
            f"Forwarding {self.host}:{self.local_port} to pod "
            f"{self.target.pod_namespace}/{self.target.pod_name}:{self.remote_port}"
        )
        self._listening = True
        self._started.set()

        try:
            while not self._stopped.is_set():
                try:
                    conn, _ = self._server.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if not self._stopped.is_set():
                        self._fail(TunnelRuntimeError(f"Error accepting on local port {self.local_port}: {e}"))
                    break

                conn.settimeout(None)
                threading.Thread(
                    target=self._handle_connection,
                    args=(conn,),
                    name=f"tunnel-{self.local_port}-conn",
                    daemon=True
                ).start()
        finally:
            self._server.close()
            logger.debug(f"Tunnel on local port {self.local_port} closed")

    def _open_stream(self):
        """Open a port-forward stream to the pod and return its socket."""
        forward = portforward(
            self._core_v1.connect_get_namespaced_pod_portforward,
            self.target.pod_name,
            self.target.pod_namespace,
            ports=str(self.remote_port)
        )
        return forward, forward.socket(self.remote_port)

    def _handle_connection(self, conn):
        self._write(f"Handling connection for {self.local_port}")

        with self._lock:
            self._active_connections += 1
        try:
            self._forward_connection(conn)
        finally:
            with self._lock:
                self._active_connections -= 1

    def _forward_connection(self, conn):
        try:
            forward, remote = self._open_stream()
        except Exception as e:
            conn.close()
            self._fail(TunnelRuntimeError(
                f"Error forwarding to pod {self.target.pod_namespace}/{self.target.pod_name} "
                f"port {self.remote_port}: {e}"
            ))
            return

        upstream = threading.Thread(target=_relay, args=(conn, remote), daemon=True)
        upstream.start()
        _relay(remote, conn)

        # Pod side closed; unblock the upstream relay
        try:
            conn.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        upstream.join(RELAY_JOIN_TIMEOUT)

        for sock in (conn, remote):
            try:
                sock.close()
            except OSError:
                pass

        error = forward.error(self.remote_port)
        if error:
            logger.warning(f"⚠ Pod {self.target.pod_name} port {self.remote_port}: {error}")


def launch_tunnel(core_v1, target, local_port, out_stream=None, ready_timeout=None):
    """
    Start a tunnel in the background and wait until it is listening.

    Returns:
        Tunnel: The running tunnel

    Raises:
        PortForwardError: If the tunnel fails to start
    """
    tunnel = Tunnel(core_v1, target, local_port, out_stream=out_stream)
    tunnel.start()
    try:
        tunnel.wait_ready(ready_timeout)
    except PortForwardError:
        tunnel.stop()
        raise
    return tunnel