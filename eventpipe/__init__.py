from eventpipe.scope import Scope, add_global_event_processor
from eventpipe.transport import Transport, AioHttpTransport, TransportMakerResponse
from eventpipe.client import Client
from eventpipe.session import Session

from eventpipe.api import *  # noqa

from eventpipe.consts import VERSION  # noqa

__all__ = [  # noqa
    "Scope",
    "Client",
    "Session",
    "Transport",
    "AioHttpTransport",
    "TransportMakerResponse",
    "add_global_event_processor",
    "integrations",
    # From eventpipe.api
    "init",
    "bind_client",
    "get_client",
    "get_scope",
    "is_initialized",
    "add_breadcrumb",
    "add_event_processor",
    "capture_event",
    "capture_exception",
    "capture_message",
    "flush",
    "close",
    "last_event_id",
]

# Initialize the debug support after everything is loaded
from eventpipe.debug import init_debug_support

init_debug_support()
del init_debug_support
