"""
Local TCP tunnels to Kubernetes pods selected by label.

Submodules:
    - ports: Free-port allocation and readiness polling
    - resolver: Pod and service lookup by label selector
    - tunnel: Background tunnel over the kubernetes port-forward stream
    - session: PortForwardSession and setup()
    - config: Settings and kubeconfig loading
    - errors: Exception hierarchy
"""

from kube_portforward.errors import (
    PortForwardError,
    PortAllocationError,
    ReadinessTimeoutError,
    AuthenticationError,
    PodLookupError,
    NoPodsFoundError,
    AmbiguousPodsError,
    ServiceLookupError,
    NoServiceFoundError,
    TransportSetupError,
    TunnelRuntimeError,
)

from kube_portforward.ports import (
    allocate_free_port,
    wait_until_port_free,
    wait_until_port_listening,
)

from kube_portforward.resolver import (
    Selector,
    ResolvedTarget,
    resolve,
)

from kube_portforward.tunnel import Tunnel, launch_tunnel

from kube_portforward.session import PortForwardSession, setup

__all__ = [
    # errors
    'PortForwardError',
    'PortAllocationError',
    'ReadinessTimeoutError',
    'AuthenticationError',
    'PodLookupError',
    'NoPodsFoundError',
    'AmbiguousPodsError',
    'ServiceLookupError',
    'NoServiceFoundError',
    'TransportSetupError',
    'TunnelRuntimeError',
    # ports
    'allocate_free_port',
    'wait_until_port_free',
    'wait_until_port_listening',
    # resolver
    'Selector',
    'ResolvedTarget',
    'resolve',
    # tunnel
    'Tunnel',
    'launch_tunnel',
    # session
    'PortForwardSession',
    'setup',
]
