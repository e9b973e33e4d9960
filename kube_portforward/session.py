"""
Port-forward session: resolve a pod by label and forward a free local port to it.

Usage:
    session = PortForwardSession(kubeconfig, namespace="fission", label_selector="svc=controller")
    local_port = session.setup()
    ...
    session.stop()

or, for a tunnel that lives as long as the process:

    local_port = setup(kubeconfig, "fission", "svc=controller")
"""
import time
import logging

from kube_portforward.config import DEFAULT_LABEL_SELECTOR, DEFAULT_PORT_SELECTION, core_v1_for
from kube_portforward.errors import PortForwardError, TransportSetupError
from kube_portforward.logging_setup import tunnel_output_stream
from kube_portforward.ports import allocate_free_port, wait_until_port_free, wait_until_port_listening
from kube_portforward.resolver import Selector, resolve
from kube_portforward.tunnel import launch_tunnel

logger = logging.getLogger(__name__)

# Longest single join in wait()
JOIN_INTERVAL = 1.0

# Sessions started through setup(); kept referenced for the process lifetime
_active_sessions = []


class PortForwardSession:
    """Forward a free local port to the single pod matching a label selector."""

    def __init__(
        self,
        kubeconfig=None,
        namespace=None,
        label_selector=DEFAULT_LABEL_SELECTOR,
        context=None,
        verbosity=1,
        port_selection=DEFAULT_PORT_SELECTION,
        ready_timeout=None,
        probe_readiness=False,
        core_v1=None,
    ):
        """
        Args:
            kubeconfig: Path to the kubeconfig (default: KUBECONFIG or ~/.kube/config)
            namespace: Namespace to search; None or '' searches all namespaces
            label_selector: Kubernetes label selector for the pod and service
            context: kubeconfig context (default: current context)
            verbosity: 2 or more surfaces the tunnel's forwarding messages on stdout
            port_selection: Service port policy: 'first', 'last' or a port name
            ready_timeout: Seconds to wait for readiness (default: None, wait forever)
            probe_readiness: Also confirm readiness with a TCP connection to the local port
            core_v1: Pre-built CoreV1Api client; skips kubeconfig loading
        """
        self.kubeconfig = kubeconfig
        self.selector = Selector(label_selector=label_selector, namespace=namespace or None)
        self.context = context
        self.verbosity = verbosity
        self.port_selection = port_selection
        self.ready_timeout = ready_timeout
        self.probe_readiness = probe_readiness
        self.local_port = None
        self.target = None
        self.tunnel = None
        self._core_v1 = core_v1

    @classmethod
    def from_settings(cls, settings, core_v1=None):
        return cls(
            kubeconfig=settings.kubeconfig,
            namespace=settings.namespace,
            label_selector=settings.label_selector,
            context=settings.context,
            verbosity=settings.verbosity,
            port_selection=settings.port_selection,
            ready_timeout=settings.ready_timeout,
            probe_readiness=settings.probe_readiness,
            core_v1=core_v1,
        )

    @property
    def core_v1(self):
        if self._core_v1 is None:
            self._core_v1 = core_v1_for(self.kubeconfig, self.context)
        return self._core_v1

    def setup(self):
        """
        Start the tunnel and wait until it accepts connections.

        Returns:
            str: Local port number

        Raises:
            PortForwardError: Any allocation, lookup or tunnel failure
            TransportSetupError: If this session already has a running tunnel
        """
        if self.tunnel is not None and self.tunnel.is_running:
            raise TransportSetupError(
                f"Session already forwarding localhost:{self.tunnel.local_port}; stop it first"
            )

        logger.debug(
            f"Setting up port forward to {self.selector.label_selector} in namespace "
            f"{self.selector.namespace or '<all>'} using the kubeconfig at {self.kubeconfig or '<default>'}"
        )

        local_port = allocate_free_port()

        logger.debug(f"Waiting for local port {local_port}")
        wait_until_port_free(local_port, timeout=self.ready_timeout)

        self.target = resolve(self.core_v1, self.selector, self.port_selection)

        logger.debug(f"Starting port forward from local port {local_port}")
        self.tunnel = launch_tunnel(
            self.core_v1,
            self.target,
            local_port,
            out_stream=tunnel_output_stream(self.verbosity),
            ready_timeout=self.ready_timeout
        )

        # launch_tunnel returns once the tunnel signals it is listening; the TCP
        # check opens one throwaway stream to the pod
        if self.probe_readiness:
            logger.debug(f"Waiting for port forward {local_port} to start...")
            try:
                wait_until_port_listening(local_port, timeout=self.ready_timeout)
            except PortForwardError:
                self.tunnel.stop()
                raise

        self.local_port = local_port
        logger.info(
            f"✓ Port forward from localhost:{local_port} to "
            f"{self.target.pod_namespace}/{self.target.pod_name}:{self.target.target_port} started"
        )
        return str(local_port)

    def stop(self):
        """Stop the tunnel, if one was started."""
        if self.tunnel is not None:
            logger.info(f"🔌 Closing port forward on localhost:{self.tunnel.local_port}")
            self.tunnel.stop()
            self.tunnel.join()

    def wait(self, timeout=None):
        """
        Block while the tunnel runs.

        Joins in short slices so KeyboardInterrupt is delivered promptly.

        Args:
            timeout: Maximum wait in seconds (default: None, until the tunnel stops)

        Raises:
            TunnelRuntimeError: If the tunnel stopped because of a failure
        """
        if self.tunnel is None:
            return

        deadline = None if timeout is None else time.time() + timeout
        while self.tunnel.is_running:
            remaining = JOIN_INTERVAL if deadline is None else min(JOIN_INTERVAL, deadline - time.time())
            if remaining <= 0:
                break
            self.tunnel.join(remaining)

        self.tunnel.raise_for_error()

    def __enter__(self):
        self.setup()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()


def setup(kubeconfig, namespace, label_selector, **kwargs):
    """
    Port forward a free local port to the pod matching label_selector.

    The tunnel runs in the background for the rest of the process.

    Returns:
        str: Local port number
    """
    session = PortForwardSession(kubeconfig, namespace, label_selector, **kwargs)
    local_port = session.setup()
    _active_sessions.append(session)
    return local_port
