"""
Test helpers package for kube-portforward tests.

Submodules:
    - k8s: Kubernetes model builders and a mocked CoreV1Api
    - fake_transport: In-process replacement for kubernetes.stream.portforward
"""

from tests.helpers.k8s import (
    make_pod,
    make_service,
    make_service_port,
    make_core_v1,
    api_exception,
)

from tests.helpers.fake_transport import FakeTransport, FakePortForward

__all__ = [
    # k8s builders
    'make_pod',
    'make_service',
    'make_service_port',
    'make_core_v1',
    'api_exception',
    # transport
    'FakeTransport',
    'FakePortForward',
]
