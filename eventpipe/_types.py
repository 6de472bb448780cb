from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

    from typing_extensions import Literal, TypedDict

    LogLevelStr = Literal["fatal", "critical", "error", "warning", "info", "debug"]

    EventType = Literal["error", "message", "transaction"]

    # "all" is the wildcard category used by the rate limiter
    DataCategory = Literal["error", "session", "transaction", "all"]

    SessionStatus = Literal["ok", "exited", "crashed", "abnormal"]

    Event = TypedDict(
        "Event",
        {
            "breadcrumbs": List[Dict[str, Any]],
            "contexts": Dict[str, Dict[str, object]],
            "dist": str,
            "environment": Optional[str],
            "event_id": str,
            "exception": Dict[Literal["values"], List[Dict[str, Any]]],
            "extra": MutableMapping[str, object],
            "fingerprint": List[str],
            "level": LogLevelStr,
            "message": str,
            "platform": str,
            "release": Optional[str],
            "request": Dict[str, object],
            "sdk": Dict[str, Any],
            "server_name": str,
            "tags": MutableMapping[str, Any],
            "timestamp": float,
            "transaction": str,
            "type": EventType,
            "user": Dict[str, object],
        },
        total=False,
    )

    Hint = Dict[str, Any]

    Breadcrumb = Dict[str, Any]

    BreadcrumbHint = Dict[str, Any]

    EventProcessor = Callable[
        [Event, Hint], Union[Optional[Event], Awaitable[Optional[Event]]]
    ]
    BeforeSend = Callable[[Event, Hint], Optional[Event]]
    BreadcrumbProcessor = Callable[[Breadcrumb, BreadcrumbHint], Optional[Breadcrumb]]

    # A capture context is either a mapping of scope data, or a function that
    # receives a scope and returns one.
    CaptureContext = Union[Mapping[str, Any], Callable[[Any], Any]]

    RateLimits = Dict[str, Any]
