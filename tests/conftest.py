"""
Pytest fixtures for kube-portforward tests.

Fixtures:
    - configure_safe_logging: Installs the surrogate-safe log filter for the session
    - fake_transport: Replaces kubernetes.stream.portforward with an echo transport
    - single_install: Mocked CoreV1Api with one pod (ns1, app=ctrl) and one service on 8080
    - double_install: Mocked CoreV1Api with two matching pods in ns1 and ns2
    - live_kubeconfig / live_selector: Settings for tests against a real cluster
"""
import os
import logging

import pytest

from kube_portforward.logging_setup import SafeUnicodeFilter
from tests.helpers import FakeTransport, make_core_v1, make_pod, make_service, make_service_port

logger = logging.getLogger(__name__)


@pytest.fixture(scope="session", autouse=True)
def configure_safe_logging():
    """Install SafeUnicodeFilter on the root logger for the whole session."""
    safe_filter = SafeUnicodeFilter()
    logging.root.addFilter(safe_filter)
    yield
    logging.root.removeFilter(safe_filter)


@pytest.fixture
def fake_transport(monkeypatch):
    """Echo transport patched in place of kubernetes.stream.portforward."""
    transport = FakeTransport()
    monkeypatch.setattr("kube_portforward.tunnel.portforward", transport)
    return transport


@pytest.fixture
def single_install():
    """CoreV1Api mock: one controller pod in ns1 behind a service targeting 8080."""
    pod = make_pod("controller-7d9f", "ns1")
    service = make_service("controller", "ns1", [make_service_port(80, target_port=8080)])
    return make_core_v1(pods=[pod], services=[service])


@pytest.fixture
def double_install():
    """CoreV1Api mock: the selector matches pods in two namespaces."""
    pods = [make_pod("controller-a", "ns1"), make_pod("controller-b", "ns2")]
    service = make_service("controller", "ns1", [make_service_port(80, target_port=8080)])
    return make_core_v1(pods=pods, services=[service])


@pytest.fixture(scope="session")
def live_selector():
    """
    Label selector for live cluster tests.

    Raises:
        pytest.skip: If KUBE_PORTFORWARD_LIVE_SELECTOR not set
    """
    selector = os.environ.get("KUBE_PORTFORWARD_LIVE_SELECTOR")
    if not selector:
        pytest.skip("KUBE_PORTFORWARD_LIVE_SELECTOR environment variable not set")
    return selector


@pytest.fixture(scope="session")
def live_namespace():
    """Namespace for live cluster tests (default: all namespaces)."""
    return os.environ.get("KUBE_PORTFORWARD_LIVE_NAMESPACE") or None


@pytest.fixture(scope="session")
def live_kubeconfig():
    """Kubeconfig for live cluster tests (default: KUBECONFIG or ~/.kube/config)."""
    return os.environ.get("KUBECONFIG") or None
