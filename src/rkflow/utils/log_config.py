import logging
import os
import sys

_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level=None, format_string=_FORMAT):
    """Configure basic logging to stdout.

    The level defaults to the ``RKFLOW_LOG_LEVEL`` environment variable
    (a level name such as ``DEBUG``), then to ``INFO``.
    """
    if level is None:
        level = os.environ.get("RKFLOW_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format=format_string, stream=sys.stdout)


setup_logging()

# Event and step diagnostics of the integrators are emitted at debug level.
logger = logging.getLogger("rkflow")
