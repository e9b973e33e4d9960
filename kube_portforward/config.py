"""
Configuration for port-forward sessions.

Settings are resolved with the priority CLI argument > environment variable >
default. The kubeconfig is loaded into its own ApiClient so the global
kubernetes client configuration is left untouched.
"""
import os
import logging
from dataclasses import dataclass
from typing import Optional

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from kube_portforward.errors import AuthenticationError

logger = logging.getLogger(__name__)

DEFAULT_LABEL_SELECTOR = "svc=controller"
DEFAULT_PORT_SELECTION = "first"
DEFAULT_VERBOSITY = 1

ENV_KUBECONFIG = "KUBECONFIG"
ENV_CONTEXT = "KUBE_PORTFORWARD_CONTEXT"
ENV_NAMESPACE = "KUBE_PORTFORWARD_NAMESPACE"
ENV_SELECTOR = "KUBE_PORTFORWARD_SELECTOR"
ENV_PORT_SELECTION = "KUBE_PORTFORWARD_PORT"
ENV_VERBOSITY = "KUBE_PORTFORWARD_VERBOSITY"
ENV_READY_TIMEOUT = "KUBE_PORTFORWARD_READY_TIMEOUT"
ENV_PROBE_READINESS = "KUBE_PORTFORWARD_PROBE_READINESS"


@dataclass(frozen=True)
class Settings:
    """Resolved settings for one session."""

    label_selector: str = DEFAULT_LABEL_SELECTOR
    namespace: Optional[str] = None
    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    port_selection: str = DEFAULT_PORT_SELECTION
    verbosity: int = DEFAULT_VERBOSITY
    ready_timeout: Optional[float] = None
    probe_readiness: bool = False


def resolve_setting(cli_value, env_var, default=None, environ=None, allow_empty=False):
    """
    Pick a setting value.

    Priority: CLI arg > env var > default. Empty strings count as unset,
    unless allow_empty is set, in which case an explicit empty CLI value wins.
    """
    if cli_value is not None and (cli_value != "" or allow_empty):
        return cli_value

    environ = os.environ if environ is None else environ
    env_value = environ.get(env_var)
    if env_value:
        return env_value

    return default


def _parse_flag(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _parse_number(value, kind, name):
    if value is None or isinstance(value, kind):
        return value
    try:
        return kind(value)
    except ValueError:
        raise ValueError(f"Invalid {name}: {value!r}") from None


def load_settings(args=None, environ=None):
    """
    Build Settings from parsed CLI arguments and the environment.

    Args:
        args: argparse.Namespace or None
        environ: Mapping to read variables from (default: os.environ)

    Returns:
        Settings

    Raises:
        ValueError: If a numeric setting cannot be parsed
    """
    def cli(name):
        return getattr(args, name, None) if args is not None else None

    verbosity = resolve_setting(cli("verbosity"), ENV_VERBOSITY, DEFAULT_VERBOSITY, environ)
    ready_timeout = resolve_setting(cli("ready_timeout"), ENV_READY_TIMEOUT, None, environ)
    # store_true gives False when the flag is absent
    probe_readiness = resolve_setting(cli("probe_readiness") or None, ENV_PROBE_READINESS, False, environ)

    return Settings(
        label_selector=resolve_setting(cli("selector"), ENV_SELECTOR, DEFAULT_LABEL_SELECTOR, environ),
        # -n "" selects all namespaces even when the environment names one
        namespace=resolve_setting(cli("namespace"), ENV_NAMESPACE, None, environ, allow_empty=True),
        kubeconfig=resolve_setting(cli("kubeconfig"), ENV_KUBECONFIG, None, environ),
        context=resolve_setting(cli("context"), ENV_CONTEXT, None, environ),
        port_selection=resolve_setting(cli("port"), ENV_PORT_SELECTION, DEFAULT_PORT_SELECTION, environ),
        verbosity=_parse_number(verbosity, int, "verbosity"),
        ready_timeout=_parse_number(ready_timeout, float, "ready timeout"),
        probe_readiness=_parse_flag(probe_readiness),
    )


def load_api_client(kubeconfig=None, context=None):
    """
    Load a kubeconfig into a dedicated ApiClient.

    Args:
        kubeconfig: Path to the kubeconfig (default: None, KUBECONFIG or ~/.kube/config)
        context: kubeconfig context to use (default: current context)

    Returns:
        kubernetes.client.ApiClient

    Raises:
        AuthenticationError: If the kubeconfig is missing or invalid
    """
    try:
        api_client = config.new_client_from_config(config_file=kubeconfig, context=context)
    except (ConfigException, OSError) as e:
        source = kubeconfig or "the default kubeconfig"
        raise AuthenticationError(f"Failed to connect to Kubernetes using {source}: {e}") from e

    logger.debug("Connected to Kubernetes API")
    return api_client


def core_v1_for(kubeconfig=None, context=None):
    """Kubernetes CoreV1Api client for the given kubeconfig."""
    return client.CoreV1Api(api_client=load_api_client(kubeconfig, context))
