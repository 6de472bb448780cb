import json
import logging
import re
import sys
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from urllib.parse import urlencode

from eventpipe.consts import VERSION
from eventpipe.errors import EventpipeError

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types import TracebackType
    from typing import Any
    from typing import Dict
    from typing import Iterator
    from typing import List
    from typing import Optional
    from typing import Set
    from typing import Tuple
    from typing import Type
    from typing import Union

    from eventpipe._types import Event, Hint

    ExcInfo = Tuple[
        Optional[Type[BaseException]], Optional[BaseException], Optional[TracebackType]
    ]


# The logger is created here but initialized in the debug support module
logger = logging.getLogger("eventpipe.errors")

SENTRY_PROTOCOL_VERSION = "7"

_DSN_RE = re.compile(r"^(?:(\w+):)//(?:(\w*)(?::\w+)?@)([\w.-]+)(?::(\d+))?/(.+)")
_LEADING_DIGITS_RE = re.compile(r"^\d+")


@contextmanager
def capture_internal_exceptions() -> "Iterator[None]":
    try:
        yield
    except Exception:
        capture_internal_exception(sys.exc_info())


def capture_internal_exception(exc_info: "ExcInfo") -> None:
    logger.error("Internal error in eventpipe", exc_info=exc_info)


def now() -> "datetime":
    return datetime.now(timezone.utc)


def format_timestamp(value: "datetime") -> str:
    """Formats a timestamp in RFC 3339 format."""
    utctime = value.astimezone(timezone.utc)

    return utctime.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def uuid4_hex() -> str:
    return uuid.uuid4().hex


def json_dumps(data: "Any") -> bytes:
    """Serialize data into a compact JSON representation encoded as UTF-8."""
    return json.dumps(
        data, allow_nan=False, default=safe_repr, separators=(",", ":")
    ).encode("utf-8")


def safe_str(value: "Any") -> str:
    try:
        return str(value)
    except Exception:
        return safe_repr(value)


def safe_repr(value: "Any") -> str:
    try:
        return repr(value)
    except Exception:
        return "<broken repr>"


def truncate(value: "Any", max_length: int) -> "Any":
    """Shortens strings longer than `max_length`, keeping the result within the limit."""
    if not isinstance(value, str) or max_length <= 0:
        return value
    if len(value) <= max_length:
        return value
    if max_length <= 3:
        return value[:max_length]
    return value[: max_length - 3] + "..."


def get_event_description(event: "Event") -> str:
    """Human readable one-line summary of an event, used for breadcrumbs and logs."""
    message = event.get("message")
    if message:
        return message

    exception = event.get("exception") or {}
    values = exception.get("values") or []
    if values:
        first = values[0]
        ty = first.get("type") or "?"
        value = first.get("value") or "<unknown>"
        return "%s: %s" % (ty, value)

    return event.get("event_id") or "<unknown>"


class BadDsn(EventpipeError, ValueError):
    """Raised on invalid DSNs."""

    def __init__(self, component: str, message: str) -> None:
        self.component = component
        super().__init__(message)


class Dsn:
    """Represents a DSN."""

    def __init__(self, value: "Union[Dsn, str]") -> None:
        if isinstance(value, Dsn):
            self.__dict__ = dict(value.__dict__)
            return

        match = _DSN_RE.match(str(value))
        if match is None:
            raise BadDsn("dsn", "Invalid DSN: %r" % (value,))

        protocol, public_key, host, port, rest = match.groups()

        # `foo/bar/123` is the path `foo/bar` and the project `123`
        path = None  # type: Optional[str]
        parts = rest.split("/")
        project_id = parts.pop()
        if parts:
            path = "/".join(parts)

        # Drop a query string or fragment following the project id
        project_match = _LEADING_DIGITS_RE.match(project_id)
        if project_match is not None:
            project_id = project_match.group(0)

        if protocol not in ("http", "https"):
            raise BadDsn("protocol", "Invalid DSN protocol: %s" % protocol)
        if not public_key:
            raise BadDsn("publicKey", "Invalid DSN: publicKey missing")
        if not host:
            raise BadDsn("host", "Invalid DSN: host missing")
        if not project_id.isdigit():
            raise BadDsn("projectId", "Invalid DSN projectId: %s" % project_id)

        self.protocol = protocol
        self.public_key = public_key
        self.host = host
        self.port = port  # type: Optional[str]
        self.path = path
        self.project_id = project_id
        self.version = SENTRY_PROTOCOL_VERSION

    @property
    def netloc(self) -> str:
        """The host and optional port of the DSN."""
        if self.port:
            return "%s:%s" % (self.host, self.port)
        return self.host

    @property
    def api_endpoint(self) -> str:
        path = "/%s" % self.path if self.path else ""
        return "%s://%s%s/api" % (self.protocol, self.netloc, path)

    @property
    def envelope_endpoint(self) -> str:
        """Returns the URL envelopes are posted to."""
        return "%s/%s/envelope/" % (self.api_endpoint, self.project_id)

    @property
    def envelope_endpoint_with_auth(self) -> str:
        """Envelope URL carrying the credentials as query parameters."""
        return "%s?%s" % (self.envelope_endpoint, urlencode(self._auth_params()))

    def _auth_params(self) -> "List[Tuple[str, str]]":
        return [("sentry_key", self.public_key), ("sentry_version", self.version)]

    def to_header(self, client: "Optional[str]" = None) -> str:
        """Returns the auth header as a string."""
        rv = self._auth_params()
        if client is not None:
            rv.append(("sentry_client", client))
        return "Sentry " + ", ".join("%s=%s" % (key, value) for key, value in rv)

    def auth_headers(self) -> "Dict[str, str]":
        return {
            "Content-Type": "application/json",
            "X-Sentry-Auth": self.to_header(client="eventpipe.python/%s" % VERSION),
        }

    def __str__(self) -> str:
        path = "/%s" % self.path if self.path else ""
        return "%s://%s@%s%s/%s" % (
            self.protocol,
            self.public_key,
            self.netloc,
            path,
            self.project_id,
        )

    def __repr__(self) -> str:
        return "<Dsn %s>" % self


def get_type_name(cls: "Optional[type]") -> "Optional[str]":
    return getattr(cls, "__qualname__", None) or getattr(cls, "__name__", None)


def get_type_module(cls: "Optional[type]") -> "Optional[str]":
    mod = getattr(cls, "__module__", None)
    if mod not in (None, "builtins", "__builtins__"):
        return mod
    return None


def single_exception_from_error_tuple(
    exc_type: "Optional[type]",
    exc_value: "Optional[BaseException]",
    mechanism: "Optional[Dict[str, Any]]" = None,
) -> "Dict[str, Any]":
    rv = {
        "module": get_type_module(exc_type),
        "type": get_type_name(exc_type),
        "value": safe_str(exc_value),
    }  # type: Dict[str, Any]
    if mechanism is not None:
        rv["mechanism"] = mechanism
    return rv


def walk_exception_chain(exc_info: "ExcInfo") -> "Iterator[ExcInfo]":
    exc_type, exc_value, tb = exc_info

    seen_exceptions = []
    seen_exception_ids = set()  # type: Set[int]

    while (
        exc_type is not None
        and exc_value is not None
        and id(exc_value) not in seen_exception_ids
    ):
        yield exc_type, exc_value, tb

        # Avoid hashing random types we don't know anything
        # about. Use the list to keep a ref so that the `id` is
        # not used for another object.
        seen_exceptions.append(exc_value)
        seen_exception_ids.add(id(exc_value))

        if exc_value.__suppress_context__:
            cause = exc_value.__cause__
        else:
            cause = exc_value.__context__
        if cause is None:
            break
        exc_type = type(cause)
        exc_value = cause
        tb = getattr(cause, "__traceback__", None)


def exceptions_from_error_tuple(
    exc_info: "ExcInfo",
    mechanism: "Optional[Dict[str, Any]]" = None,
) -> "List[Dict[str, Any]]":
    rv = [
        single_exception_from_error_tuple(exc_type, exc_value, mechanism)
        for exc_type, exc_value, _ in walk_exception_chain(exc_info)
    ]

    # The exception that was raised last comes first
    rv.reverse()

    return rv


def exc_info_from_error(error: "Union[BaseException, ExcInfo]") -> "ExcInfo":
    if isinstance(error, tuple) and len(error) == 3:
        exc_type, exc_value, tb = error
    elif isinstance(error, BaseException):
        tb = getattr(error, "__traceback__", None)
        exc_type = type(error)
        exc_value = error
    else:
        raise ValueError("Expected an exception or an exc_info tuple, got %r" % error)

    return exc_type, exc_value, tb


def event_hint_with_exc_info(exc_info: "Optional[ExcInfo]" = None) -> "Hint":
    """Creates a hint with the exc info filled in."""
    if exc_info is None:
        exc_info = sys.exc_info()
    else:
        exc_info = exc_info_from_error(exc_info)
    if exc_info[0] is None:
        return {"exc_info": None}
    return {"exc_info": exc_info, "original_exception": exc_info[1]}


def event_from_exception(
    exc_info: "Union[BaseException, ExcInfo]",
    mechanism: "Optional[Dict[str, Any]]" = None,
) -> "Tuple[Event, Hint]":
    exc_info = exc_info_from_error(exc_info)
    hint = event_hint_with_exc_info(exc_info)
    return (
        {
            "level": "error",
            "exception": {"values": exceptions_from_error_tuple(exc_info, mechanism)},
        },
        hint,
    )
