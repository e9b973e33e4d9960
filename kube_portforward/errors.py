"""
Exceptions raised while setting up a port-forward session.

Every failure is raised to the caller and never retried. The CLI treats
any PortForwardError as fatal; library callers can catch the specific
subclasses.
"""


class PortForwardError(Exception):
    """Base class for all port-forward failures."""


class PortAllocationError(PortForwardError):
    """No free local port could be obtained."""


class ReadinessTimeoutError(PortForwardError):
    """A local port did not reach the expected state in time."""


class AuthenticationError(PortForwardError):
    """The cluster API could not be reached with the given kubeconfig."""


class PodLookupError(PortForwardError):
    """Listing pods for the label selector failed."""


class NoPodsFoundError(PodLookupError):
    """No pod matches the label selector."""


class AmbiguousPodsError(PodLookupError):
    """More than one pod matches the label selector."""

    def __init__(self, namespaces):
        self.namespaces = list(namespaces)
        super().__init__(
            f"Found {len(self.namespaces)} installs, set the namespace to one of: "
            f"{' '.join(self.namespaces)}"
        )


class ServiceLookupError(PortForwardError):
    """Listing services or picking a target port failed."""


class NoServiceFoundError(ServiceLookupError):
    """No service matches the label selector in the pod's namespace."""


class TransportSetupError(PortForwardError):
    """The local end of the tunnel could not be set up."""


class TunnelRuntimeError(PortForwardError):
    """The tunnel failed after it started forwarding."""
