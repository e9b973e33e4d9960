"""
Logging configuration for the port-forward CLI.

Verbosity levels:
    0 - warnings and errors only
    1 - progress messages (default)
    2 - full trace, including the tunnel's own forwarding messages
"""
import sys
import logging

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

VERBOSITY_LEVELS = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}

# Verbosity at which the tunnel's stdout messages are shown
TUNNEL_OUTPUT_VERBOSITY = 2


class SafeUnicodeFilter(logging.Filter):
    """Filter to sanitize log messages containing surrogate characters.

    Pod names, API error bodies and relayed error strings can carry surrogate
    characters (U+D800 to U+DFFF) which are invalid in UTF-8 and would make
    the stream handler raise UnicodeEncodeError.
    """

    @staticmethod
    def _sanitize(value):
        try:
            value.encode('utf-8')
            return value
        except UnicodeEncodeError:
            return value.encode('utf-8', errors='replace').decode('utf-8')

    def filter(self, record):
        if isinstance(record.msg, str):
            record.msg = self._sanitize(record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                self._sanitize(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        return True


def level_for(verbosity):
    """Map a verbosity count to a logging level."""
    if verbosity <= 0:
        return logging.WARNING
    return VERBOSITY_LEVELS.get(verbosity, logging.DEBUG)


def tunnel_output_stream(verbosity):
    """Stream for the tunnel's forwarding messages, or None to suppress them."""
    return sys.stdout if verbosity >= TUNNEL_OUTPUT_VERBOSITY else None


def configure_logging(verbosity=1, stream=None):
    """
    Configure the package logger for CLI use.

    Args:
        verbosity: 0 (quiet), 1 (default) or 2+ (debug)
        stream: Handler stream (default: stderr)

    Returns:
        logging.Logger: The package logger
    """
    logger = logging.getLogger("kube_portforward")
    logger.setLevel(level_for(verbosity))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(SafeUnicodeFilter())
    logger.addHandler(handler)
    logger.propagate = False

    # The kubernetes client logs every websocket frame at DEBUG
    if verbosity < 3:
        logging.getLogger("kubernetes").setLevel(logging.WARNING)
        logging.getLogger("urllib3").setLevel(logging.WARNING)

    return logger
