"""
Command line entry point: forward a local port to a pod selected by label.

Prints the local port once the tunnel is ready and keeps forwarding until
interrupted. Any failure is fatal and exits with status 1.
"""
import sys
import logging
import argparse

from kube_portforward.config import (
    ENV_CONTEXT,
    ENV_NAMESPACE,
    ENV_PORT_SELECTION,
    ENV_PROBE_READINESS,
    ENV_READY_TIMEOUT,
    ENV_SELECTOR,
    ENV_VERBOSITY,
    load_settings,
)
from kube_portforward.errors import PortForwardError
from kube_portforward.logging_setup import configure_logging
from kube_portforward.session import PortForwardSession

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="kube-portforward",
        description="Forward a free local port to the pod matching a label selector.",
    )
    parser.add_argument(
        "--kubeconfig",
        help="Path to the kubeconfig (default: $KUBECONFIG or ~/.kube/config)",
    )
    parser.add_argument(
        "--context",
        help=f"kubeconfig context (env: {ENV_CONTEXT})",
    )
    parser.add_argument(
        "-n", "--namespace",
        help=f"Namespace to search; all namespaces when unset or "" (env: {ENV_NAMESPACE})",
    )
    parser.add_argument(
        "-l", "--selector",
        help=f"Label selector for the pod and service (env: {ENV_SELECTOR}, default: svc=controller)",
    )
    parser.add_argument(
        "--port",
        help=f"Service port to use: first, last or a port name (env: {ENV_PORT_SELECTION}, default: first)",
    )
    parser.add_argument(
        "--ready-timeout",
        type=float,
        help=f"Seconds to wait for the tunnel; waits forever when unset (env: {ENV_READY_TIMEOUT})",
    )
    parser.add_argument(
        "--probe-readiness",
        action="store_true",
        help=f"Also confirm readiness with a TCP connection to the local port (env: {ENV_PROBE_READINESS})",
    )
    parser.add_argument(
        "-v", "--verbose",
        dest="verbosity",
        action="count",
        help=f"Increase verbosity; -vv also shows tunnel output (env: {ENV_VERBOSITY})",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Only log warnings and errors",
    )
    return parser


def run(session):
    """Start the session, print the port, and block until interrupted or failed."""
    try:
        local_port = session.setup()
        print(local_port, flush=True)
        session.wait()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        session.stop()


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbosity is not None:
        # -v means verbosity 2 since 1 is already the default
        args.verbosity += 1
    if args.quiet:
        args.verbosity = 0

    try:
        settings = load_settings(args)
    except ValueError as e:
        parser.error(str(e))

    configure_logging(settings.verbosity)

    try:
        run(PortForwardSession.from_settings(settings))
    except PortForwardError as e:
        logger.error(f"❌ {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
