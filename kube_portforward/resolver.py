"""
Resolve a label selector to a single pod and the port to forward to.

The pod is found by label selector, in one namespace or across all of them.
The remote port is the targetPort of a service in the pod's namespace that
matches the same selector.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import urllib3
from kubernetes.client.rest import ApiException

from kube_portforward.errors import (
    AmbiguousPodsError,
    AuthenticationError,
    NoPodsFoundError,
    NoServiceFoundError,
    PodLookupError,
    ServiceLookupError,
)

logger = logging.getLogger(__name__)

# Port selection policies for services that declare several ports.
# Any other value is treated as a service port name.
PORT_SELECTION_FIRST = "first"
PORT_SELECTION_LAST = "last"


@dataclass(frozen=True)
class Selector:
    """Label query identifying the target workload."""

    label_selector: str
    namespace: Optional[str] = None

    @property
    def all_namespaces(self):
        return not self.namespace


@dataclass(frozen=True)
class ResolvedTarget:
    """Pod and remote port a tunnel forwards to."""

    pod_name: str
    pod_namespace: str
    target_port: str


def _api_error(error_cls, action, e):
    """Map an API failure to AuthenticationError or the lookup error class."""
    if isinstance(e, ApiException) and e.status in (401, 403):
        return AuthenticationError(f"Kubernetes API rejected credentials while {action}: {e.reason}")
    return error_cls(f"Error {action}: {e}")


def list_matching_pods(core_v1, selector):
    """
    List pods matching the selector.

    Args:
        core_v1: Kubernetes CoreV1Api client
        selector: Selector with label selector and optional namespace

    Returns:
        list: V1Pod objects

    Raises:
        PodLookupError: If the API call fails
        AuthenticationError: If the API rejects the credentials
    """
    try:
        if selector.all_namespaces:
            pods = core_v1.list_pod_for_all_namespaces(label_selector=selector.label_selector)
        else:
            pods = core_v1.list_namespaced_pod(
                namespace=selector.namespace,
                label_selector=selector.label_selector
            )
    except (ApiException, urllib3.exceptions.HTTPError) as e:
        raise _api_error(PodLookupError, f"getting pods for {selector.label_selector}", e) from e

    return list(pods.items or [])


def find_pod(core_v1, selector):
    """
    Find the single pod matching the selector.

    Args:
        core_v1: Kubernetes CoreV1Api client
        selector: Selector with label selector and optional namespace

    Returns:
        V1Pod: The matching pod

    Raises:
        NoPodsFoundError: If nothing matches
        AmbiguousPodsError: If more than one pod matches
    """
    pods = list_matching_pods(core_v1, selector)

    if not pods:
        where = "any namespace" if selector.all_namespaces else f"namespace {selector.namespace}"
        raise NoPodsFoundError(f"No pod matching {selector.label_selector} in {where}")

    # More than one match means more than one install; the caller has to
    # pick a namespace
    if len(pods) > 1:
        raise AmbiguousPodsError(pod.metadata.namespace for pod in pods)

    return pods[0]


def find_service(core_v1, label_selector, namespace):
    """
    Find the first service matching the label selector in a namespace.

    Args:
        core_v1: Kubernetes CoreV1Api client
        label_selector: Label selector string
        namespace: Namespace to search

    Returns:
        V1Service: First matching service

    Raises:
        NoServiceFoundError: If no service matches
        ServiceLookupError: If the API call fails
    """
    try:
        services = core_v1.list_namespaced_service(namespace=namespace, label_selector=label_selector)
    except (ApiException, urllib3.exceptions.HTTPError) as e:
        raise _api_error(ServiceLookupError, f"getting {label_selector} service", e) from e

    if not services.items:
        raise NoServiceFoundError(f"Service {label_selector} not found in namespace {namespace}")

    return services.items[0]


def select_service_port(service, port_selection=PORT_SELECTION_FIRST):
    """
    Pick one of a service's declared ports.

    Args:
        service: V1Service
        port_selection: 'first', 'last', or the name of a service port

    Returns:
        V1ServicePort: The selected port

    Raises:
        ServiceLookupError: If the service has no ports or no port has the name
    """
    service_name = service.metadata.name
    ports = list((service.spec and service.spec.ports) or [])
    if not ports:
        raise ServiceLookupError(f"Service {service_name} declares no ports")

    if port_selection == PORT_SELECTION_FIRST:
        return ports[0]
    if port_selection == PORT_SELECTION_LAST:
        return ports[-1]

    for service_port in ports:
        if service_port.name == port_selection:
            return service_port

    names = ", ".join(p.name or "<unnamed>" for p in ports)
    raise ServiceLookupError(
        f"Service {service_name} has no port named {port_selection} (ports: {names})"
    )


def resolve_target_port(service_port, pod):
    """
    Turn a service port's targetPort into a numeric container port.

    An unset targetPort defaults to the service port. A named targetPort is
    looked up in the pod's container ports.

    Returns:
        str: Container port number
    """
    target_port = service_port.target_port
    if target_port is None:
        return str(service_port.port)

    if isinstance(target_port, int) or str(target_port).isdigit():
        return str(target_port)

    for container in (pod.spec.containers if pod.spec else None) or []:
        for container_port in container.ports or []:
            if container_port.name == target_port:
                return str(container_port.container_port)

    raise ServiceLookupError(
        f"Named target port {target_port} not found on pod "
        f"{pod.metadata.namespace}/{pod.metadata.name}"
    )


def resolve(core_v1, selector, port_selection=PORT_SELECTION_FIRST):
    """
    Resolve a selector to the pod and port a tunnel should forward to.

    Args:
        core_v1: Kubernetes CoreV1Api client
        selector: Selector with label selector and optional namespace
        port_selection: Which service port to use (default: 'first')

    Returns:
        ResolvedTarget: Pod name, pod namespace and target port

    Raises:
        PodLookupError: No pod, more than one pod, or API failure
        ServiceLookupError: No service, no usable port, or API failure
        AuthenticationError: If the API rejects the credentials
    """
    pod = find_pod(core_v1, selector)
    pod_name = pod.metadata.name
    pod_namespace = pod.metadata.namespace

    service = find_service(core_v1, selector.label_selector, pod_namespace)
    service_port = select_service_port(service, port_selection)
    target_port = resolve_target_port(service_port, pod)

    logger.debug(f"Connecting to port {target_port} on pod {pod_namespace}/{pod_name}")

    return ResolvedTarget(pod_name=pod_name, pod_namespace=pod_namespace, target_port=target_port)
