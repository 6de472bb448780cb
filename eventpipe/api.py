import inspect
from contextvars import ContextVar

from eventpipe.client import Client

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any
    from typing import Callable
    from typing import Optional
    from typing import TypeVar
    from typing import Union

    from eventpipe._types import (
        Breadcrumb,
        BreadcrumbHint,
        CaptureContext,
        Event,
        EventProcessor,
        Hint,
        LogLevelStr,
    )
    from eventpipe.client import _Client
    from eventpipe.scope import Scope

    F = TypeVar("F", bound=Callable[..., Any])


# When changing this, update __all__ in __init__.py too
__all__ = [
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


_current_client: "ContextVar[Optional[_Client]]" = ContextVar(
    "eventpipe_current_client", default=None
)

# Returned by `get_client` while nothing is bound. It is disabled and
# therefore never sends anything.
_noop_client: "Optional[_Client]" = None


def clientmethod(f: "F") -> "F":
    f.__doc__ = "%s\n\n%s" % (
        "Alias for :py:meth:`eventpipe.Client.%s`" % f.__name__,
        inspect.getdoc(getattr(Client, f.__name__)),
    )
    return f


def init(*args: "Any", **kwargs: "Any") -> "_Client":
    """Initializes the SDK and binds a new client to the current context.

    Takes the same arguments as `Client`.
    """
    client = Client(*args, **kwargs)
    bind_client(client)
    return client


def bind_client(client: "Optional[_Client]") -> None:
    """Makes `client` the one used by the module level functions."""
    _current_client.set(client)


def get_client() -> "_Client":
    """Returns the bound client, or a disabled one if nothing is bound."""
    global _noop_client

    client = _current_client.get()
    if client is not None:
        return client

    if _noop_client is None:
        _noop_client = Client(enabled=False, default_integrations=False)
    return _noop_client


def is_initialized() -> bool:
    """Returns whether a client is bound and still accepts events."""
    client = _current_client.get()
    return client is not None and client.is_active()


def get_scope() -> "Scope":
    return get_client().get_scope()


@clientmethod
async def capture_event(
    event: "Event",
    hint: "Optional[Hint]" = None,
    scope: "Optional[Union[Scope, CaptureContext]]" = None,
) -> "Optional[str]":
    return await get_client().capture_event(event, hint=hint, scope=scope)


@clientmethod
async def capture_message(
    message: str,
    level: "Optional[LogLevelStr]" = None,
    hint: "Optional[Hint]" = None,
    scope: "Optional[Union[Scope, CaptureContext]]" = None,
) -> "Optional[str]":
    return await get_client().capture_message(
        message, level=level, hint=hint, scope=scope
    )


@clientmethod
async def capture_exception(
    error: "Optional[BaseException]" = None,
    hint: "Optional[Hint]" = None,
    scope: "Optional[Union[Scope, CaptureContext]]" = None,
) -> "Optional[str]":
    return await get_client().capture_exception(error, hint=hint, scope=scope)


@clientmethod
def add_breadcrumb(
    crumb: "Optional[Breadcrumb]" = None,
    hint: "Optional[BreadcrumbHint]" = None,
    **kwargs: "Any"
) -> None:
    return get_client().add_breadcrumb(crumb, hint, **kwargs)


@clientmethod
def add_event_processor(func: "EventProcessor") -> None:
    return get_client().add_event_processor(func)


@clientmethod
async def flush(timeout: "Optional[float]" = None) -> bool:
    return await get_client().flush(timeout=timeout)


@clientmethod
async def close(timeout: "Optional[float]" = None) -> bool:
    return await get_client().close(timeout=timeout)


@clientmethod
def last_event_id() -> "Optional[str]":
    return get_client().last_event_id()
