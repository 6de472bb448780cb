import itertools
from enum import Enum
from typing import TYPE_CHECKING

# up top to prevent circular import due to integration import
DEFAULT_MAX_VALUE_LENGTH = 250

DEFAULT_MAX_BREADCRUMBS = 100

# The `max_breadcrumbs` option cannot raise the limit above this value.
MAX_BREADCRUMBS = 100

DEFAULT_BUFFER_SIZE = 30

DEFAULT_NORMALIZE_DEPTH = 3

DEFAULT_ENVIRONMENT = "production"

# Retry delay applied when a rate limit header carries no usable value.
DEFAULT_RETRY_AFTER = 60

# Wildcard rate limit category, disables every category at once.
ALL_CATEGORIES = "all"

# Marker placed in `hint["data"]` for events reporting a failure of the
# pipeline itself.
INTERNAL_EXCEPTION_MARKER = "__eventpipe__"


class DataCategory(str, Enum):
    """Classification of outbound payloads used for per-type rate limiting."""

    ERROR = "error"
    SESSION = "session"
    TRANSACTION = "transaction"

    def __str__(self) -> str:
        return self.value


if TYPE_CHECKING:
    import eventpipe

    from typing import Callable
    from typing import List
    from typing import Optional
    from typing import Sequence
    from typing import Type
    from typing import Union

    from typing_extensions import Literal

    from eventpipe._types import (
        BeforeSend,
        BreadcrumbProcessor,
    )


# This type exists to trick mypy and PyCharm into thinking `init` and `Client`
# take these arguments (even though they take opaque **kwargs)
class ClientConstructor:

    def __init__(
        self,
        dsn=None,  # type: Optional[str]
        *,
        debug=False,  # type: bool
        enabled=True,  # type: bool
        release=None,  # type: Optional[str]
        environment=None,  # type: Optional[str]
        dist=None,  # type: Optional[str]
        server_name=None,  # type: Optional[str]
        sample_rate=1.0,  # type: Optional[float]
        max_breadcrumbs=DEFAULT_MAX_BREADCRUMBS,  # type: int
        before_breadcrumb=None,  # type: Optional[BreadcrumbProcessor]
        before_send=None,  # type: Optional[BeforeSend]
        max_value_length=DEFAULT_MAX_VALUE_LENGTH,  # type: int
        normalize_depth=DEFAULT_NORMALIZE_DEPTH,  # type: int
        integrations=[],  # type: Sequence[eventpipe.integrations.Integration]  # noqa: B006
        default_integrations=True,  # type: bool
        transport=None,  # type: Optional[Union[eventpipe.transport.Transport, Type[eventpipe.transport.Transport], Callable[..., object]]]
        transport_buffer_size=DEFAULT_BUFFER_SIZE,  # type: int
        transport_auth="header",  # type: Literal["header", "query"]
        http_proxy=None,  # type: Optional[str]
        ca_certs=None,  # type: Optional[str]
        shutdown_timeout=2,  # type: float
        packages=[],  # type: List[dict]  # noqa: B006
    ):
        # type: (...) -> None
        """Initialize the eventpipe client with the given parameters. All parameters described here can be used in a call to `eventpipe.init()`.

        :param dsn: The DSN tells the client where to send the events.

            If this option is not set, the client will not send any data.

            The `dsn` config option takes precedence over the `EVENTPIPE_DSN` environment variable.

        :param debug: Turns debug mode on or off.

            When `True`, the client prints out diagnostics about dropped events and failed deliveries on stderr.

        :param enabled: When `False` every capture is rejected. `Client.close()` disables the client for good.

        :param release: Sets the release. Falls back to the `EVENTPIPE_RELEASE` environment variable.

        :param environment: Sets the environment. Falls back to the `EVENTPIPE_ENVIRONMENT` environment variable
            and then to `production`. An explicitly configured empty string is kept as is.

        :param dist: The distribution of the application.

        :param sample_rate: Probability in the range `[0, 1]` that an error or message event is sent.
            Transactions are sampled elsewhere and are not affected.

        :param max_breadcrumbs: Maximum number of breadcrumbs kept on the scope, capped at 100.

        :param before_breadcrumb: Called with every breadcrumb and its hint. Returning `None` drops the breadcrumb.

        :param before_send: Called with every error or message event right before it is sent. Returning `None`
            drops the event. Any other non-event return value is reported as an invalid filter result.

        :param max_value_length: Messages, the first exception value and the request URL are truncated to this length.

        :param normalize_depth: Depth to which `breadcrumbs[].data`, `user`, `contexts` and `extra` are
            normalized. `0` disables normalization.

        :param integrations: Integration instances to set up in addition to the defaults.

        :param default_integrations: Set to `False` to skip the default integrations.

        :param transport: A `Transport` instance or subclass, or a callable used as the request maker.

        :param transport_buffer_size: Maximum number of requests in flight at the same time.

        :param transport_auth: Either `header` (`X-Sentry-Auth`) or `query` (`sentry_key` in the URL).

        :param http_proxy: Proxy URL used by the HTTP transport.

        :param ca_certs: Path to a CA bundle, defaults to the `certifi` bundle.

        :param shutdown_timeout: Seconds `flush()` and `close()` wait when no timeout is given.

        :param packages: Package descriptors (`{"name": ..., "version": ...}`) appended to `sdk.packages`.
        """
        pass


def _get_default_options():
    # type: () -> dict
    import inspect

    a = inspect.getfullargspec(ClientConstructor.__init__)
    defaults = a.defaults or ()
    kwonlydefaults = a.kwonlydefaults or {}

    return dict(
        itertools.chain(
            zip(a.args[-len(defaults) :], defaults),
            kwonlydefaults.items(),
        )
    )


DEFAULT_OPTIONS = _get_default_options()
del _get_default_options


VERSION = "0.4.0"

SDK_INFO = {
    "name": "eventpipe.python",
    "version": VERSION,
    "packages": [{"name": "pypi:eventpipe", "version": VERSION}],
}
