import sys
import logging

from eventpipe.api import _current_client
from eventpipe.client import _client_init_debug
from eventpipe.utils import logger
from logging import LogRecord


class _ClientBasedFilter(logging.Filter):
    def filter(self, record: "LogRecord") -> bool:
        if _client_init_debug.get(False):
            return True

        # Never construct a client here, construction logs through this filter
        client = _current_client.get()
        if client is None:
            return False
        return bool(client.options["debug"])


def init_debug_support() -> None:
    if not logger.handlers:
        configure_logger()


def configure_logger() -> None:
    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(
        logging.Formatter(" [eventpipe] %(levelname)s: %(message)s")
    )
    logger.addHandler(_handler)
    logger.setLevel(logging.DEBUG)
    logger.addFilter(_ClientBasedFilter())
