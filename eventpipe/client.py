import os
import random
import sys
import time
from collections.abc import Mapping
from contextvars import ContextVar

from eventpipe.consts import (
    DEFAULT_ENVIRONMENT,
    DEFAULT_MAX_VALUE_LENGTH,
    DEFAULT_OPTIONS,
    INTERNAL_EXCEPTION_MARKER,
    SDK_INFO,
    ClientConstructor,
)
from eventpipe.envelope import event_to_transport_request, session_to_transport_request
from eventpipe.errors import (
    ClientDisabled,
    EventDropped,
    FilteredByProcessor,
    FilteredByUser,
    InvalidFilterResult,
    PipelineFailure,
    SampledOut,
    TransportError,
)
from eventpipe.integrations import setup_integrations
from eventpipe.scope import Scope
from eventpipe.serializer import normalize
from eventpipe.transport import make_transport
from eventpipe.utils import (
    capture_internal_exceptions,
    event_from_exception,
    get_event_description,
    logger,
    safe_repr,
    truncate,
    uuid4_hex,
)

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import asyncio

    from typing import Any
    from typing import Dict
    from typing import List
    from typing import Optional
    from typing import Tuple
    from typing import Type
    from typing import Union

    from eventpipe._types import (
        CaptureContext,
        Event,
        EventProcessor,
        Hint,
        LogLevelStr,
    )
    from eventpipe.envelope import TransportRequest
    from eventpipe.integrations import Integration
    from eventpipe.session import Session


_client_init_debug = ContextVar("client_init_debug")


def _get_options(*args: "Optional[str]", **kwargs: "Any") -> "Dict[str, Any]":
    if args and (isinstance(args[0], (bytes, str)) or args[0] is None):
        dsn: "Optional[str]" = args[0]
        args = args[1:]
    else:
        dsn = None

    if len(args) > 1:
        raise TypeError("Only single positional argument is expected")

    rv = dict(DEFAULT_OPTIONS)
    options = dict(*args, **kwargs)
    if dsn is not None and options.get("dsn") is None:
        options["dsn"] = dsn

    for key, value in options.items():
        if key not in rv:
            raise TypeError("Unknown option %r" % (key,))
        rv[key] = value

    if rv["dsn"] is None:
        rv["dsn"] = os.environ.get("EVENTPIPE_DSN")

    if rv["release"] is None:
        rv["release"] = os.environ.get("EVENTPIPE_RELEASE")

    if rv["environment"] is None:
        rv["environment"] = os.environ.get("EVENTPIPE_ENVIRONMENT") or DEFAULT_ENVIRONMENT

    return rv


def _is_internal_exception(hint: "Hint") -> bool:
    data = hint.get("data")
    return isinstance(data, Mapping) and data.get(INTERNAL_EXCEPTION_MARKER) is True


def _get_user_agent(event: "Event") -> "Optional[str]":
    request = event.get("request") or {}
    headers = request.get("headers") or {}
    for key, value in headers.items():
        if key.lower() == "user-agent":
            return value
    return None


def _log_request_failure(task: "asyncio.Future[Any]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Failed sending request: %s", exc)


class _Client:
    """The client is internally responsible for capturing the events and
    forwarding them to the collector through the configured transport.  It
    takes the client options as keyword arguments and optionally the DSN as
    first argument.

    Every captured event goes through the same pipeline: enabled check,
    sampling, client options, scope data and processors, client processors,
    normalization, `before_send` and session bookkeeping. The first step
    that rejects the event ends the capture.
    """

    def __init__(self, *args: "Any", **kwargs: "Any") -> None:
        old_debug = _client_init_debug.get(False)
        try:
            self.options: "Dict[str, Any]" = get_options(*args, **kwargs)
            _client_init_debug.set(self.options["debug"])

            self._closed = False
            self._last_event_id: "Optional[str]" = None
            self._event_processors: "List[EventProcessor]" = []
            self._scope = Scope(
                max_breadcrumbs=self.options["max_breadcrumbs"],
                before_breadcrumb=self.options["before_breadcrumb"],
            )

            self.transport = make_transport(self.options)
            self.integrations = setup_integrations(
                self.options["integrations"],
                self,
                with_defaults=self.options["default_integrations"],
            )
        finally:
            _client_init_debug.set(old_debug)

    def __repr__(self) -> str:
        return "<%s dsn=%r enabled=%s>" % (
            self.__class__.__name__,
            self.dsn,
            self._is_enabled(),
        )

    @property
    def dsn(self) -> "Optional[str]":
        """Returns the configured DSN as string."""
        return self.options["dsn"]

    def is_active(self) -> bool:
        """Returns whether the client still accepts events."""
        return self._is_enabled()

    def _is_enabled(self) -> bool:
        return bool(self.options["enabled"]) and not self._closed

    def get_scope(self) -> Scope:
        return self._scope

    def set_scope(self, scope: Scope) -> None:
        self._scope = scope

    def last_event_id(self) -> "Optional[str]":
        return self._last_event_id

    def add_event_processor(self, func: "EventProcessor") -> None:
        """Registers a processor that runs after all scope processors."""
        self._event_processors.append(func)

    def add_breadcrumb(
        self,
        crumb: "Optional[Dict[str, Any]]" = None,
        hint: "Optional[Dict[str, Any]]" = None,
        **kwargs: "Any"
    ) -> None:
        self._scope.add_breadcrumb(crumb, hint, **kwargs)

    def get_integration(
        self, name_or_class: "Union[str, Type[Integration]]"
    ) -> "Optional[Integration]":
        """Returns the integration for this client by name or class.
        If the client does not have that integration then `None` is returned.
        """
        if isinstance(name_or_class, str):
            integration_name = name_or_class
        elif name_or_class.identifier is not None:
            integration_name = name_or_class.identifier
        else:
            raise ValueError("Integration has no name")

        return self.integrations.get(integration_name)

    async def capture_exception(
        self,
        error: "Optional[BaseException]" = None,
        hint: "Optional[Hint]" = None,
        scope: "Optional[Union[Scope, CaptureContext]]" = None,
    ) -> "Optional[str]":
        """Captures an exception.

        :param error: An exception to capture. If `None`, `sys.exc_info()` will be used.

        :returns: An `event_id` if the event was handed to the transport, `None` otherwise.
        """
        if error is None:
            exc_info = sys.exc_info()
            error = exc_info[1]

        if isinstance(error, BaseException):
            event, exc_hint = event_from_exception(error)
        else:
            event = {
                "level": "error",
                "message": "Non-exception value captured: %s" % safe_repr(error),
            }
            exc_hint = {"original_exception": error}

        exc_hint.update(hint or {})
        return await self.capture_event(event, hint=exc_hint, scope=scope)

    async def capture_message(
        self,
        message: str,
        level: "Optional[LogLevelStr]" = None,
        hint: "Optional[Hint]" = None,
        scope: "Optional[Union[Scope, CaptureContext]]" = None,
    ) -> "Optional[str]":
        """Captures a message.

        :param level: If no level is provided, the default level is `info`.

        :returns: An `event_id` if the event was handed to the transport, `None` otherwise.
        """
        if isinstance(message, BaseException):
            return await self.capture_exception(message, hint=hint, scope=scope)

        event = {"message": str(message), "level": level or "info"}  # type: Event
        return await self.capture_event(event, hint=hint, scope=scope)

    async def capture_event(
        self,
        event: "Event",
        hint: "Optional[Hint]" = None,
        scope: "Optional[Union[Scope, CaptureContext]]" = None,
    ) -> "Optional[str]":
        """Captures an event.

        This takes the ready made event and an optional hint and scope.  The
        hint is internally used to further customize the representation of the
        error.  When provided it's a dictionary of optional information such
        as exception info.

        `scope` is either a `Scope` used as is, or a capture context (a
        mapping of scope data or a callable receiving a scope) applied to a
        clone of the client's scope.

        :returns: An `event_id` if the event was handed to the transport, `None` otherwise.
        """
        hint = dict(hint or ())
        try:
            prepared, request = await self._process_event(event, hint, scope)
        except (InvalidFilterResult, PipelineFailure) as exc:
            logger.error("%s", exc)
            return None
        except EventDropped as exc:
            logger.info("%s", exc)
            return None

        if not self._send_request(request):
            return None

        event_id = prepared["event_id"]
        self._last_event_id = event_id

        event_type = "transaction" if prepared.get("type") == "transaction" else "event"
        with capture_internal_exceptions():
            self._scope.add_breadcrumb(
                {
                    "category": "eventpipe.%s" % event_type,
                    "event_id": event_id,
                    "level": prepared.get("level"),
                    "message": get_event_description(prepared),
                },
                {"event": prepared},
            )
        return event_id

    def capture_session(self, session: "Session") -> None:
        """Sends an update for `session`. Sessions without a release are discarded."""
        if not session.release:
            logger.warning("Discarded session because of missing release")
            return

        self._send_request(session_to_transport_request(session))
        # Any later update is not the first one anymore
        session.update(init=False)

    def _resolve_scope(
        self, scope: "Optional[Union[Scope, CaptureContext]]"
    ) -> Scope:
        if scope is None:
            return self._scope.clone()
        if isinstance(scope, Scope):
            return scope
        return self._scope.clone().update(scope)

    async def _process_event(
        self,
        event: "Event",
        hint: "Hint",
        scope: "Optional[Union[Scope, CaptureContext]]",
    ) -> "Tuple[Event, TransportRequest]":
        if not self._is_enabled():
            raise ClientDisabled("SDK not enabled, will not capture event.")

        is_transaction = event.get("type") == "transaction"
        sample_rate = self.options["sample_rate"]
        # Sampling for transactions happens somewhere else
        if (
            not is_transaction
            and sample_rate is not None
            and random.random() > sample_rate
        ):
            raise SampledOut(
                "Discarding event because it's not included in the random sample "
                "(sampling rate = %s)" % sample_rate
            )

        is_internal = _is_internal_exception(hint)
        try:
            prepared = await self._prepare_event(event, hint, scope, is_transaction)
            # Tags, fingerprint and other fields are not depth-normalized,
            # the whole event still has to serialize.
            return prepared, event_to_transport_request(normalize(prepared))
        except EventDropped:
            raise
        except Exception as exc:
            if not is_internal:
                await self.capture_exception(
                    exc,
                    hint={
                        "data": {INTERNAL_EXCEPTION_MARKER: True},
                        "original_exception": exc,
                    },
                )
            raise PipelineFailure(
                "Event processing pipeline threw an error, original event will not "
                "be sent. Details have been sent as a new event.\nReason: %s" % exc
            ) from exc

    async def _prepare_event(
        self,
        event: "Event",
        hint: "Hint",
        scope: "Optional[Union[Scope, CaptureContext]]",
        is_transaction: bool,
    ) -> "Event":
        prepared = dict(event)  # type: Event
        if prepared.get("event_id") is None:
            prepared["event_id"] = uuid4_hex()
        if prepared.get("timestamp") is None:
            prepared["timestamp"] = time.time()

        self._apply_client_options(prepared)
        self._apply_sdk_metadata(prepared)

        final_scope = self._resolve_scope(scope)
        event_ = await final_scope.apply_to_event(prepared, hint)
        if event_ is None:
            raise FilteredByProcessor(
                "A scope event processor returned None, will not send event."
            )

        event_ = await final_scope._notify_event_processors(
            self._event_processors, event_, hint
        )
        if event_ is None:
            raise FilteredByProcessor(
                "A client event processor returned None, will not send event."
            )

        normalize_depth = self.options["normalize_depth"]
        if normalize_depth is not None and normalize_depth > 0:
            event_ = self._normalize_event(event_, normalize_depth)

        before_send = self.options["before_send"]
        if not _is_internal_exception(hint) and not is_transaction and before_send:
            new_event = before_send(event_, hint)
            if new_event is None:
                raise FilteredByUser("`before_send` returned None, will not send event.")
            if not isinstance(new_event, dict):
                raise InvalidFilterResult(
                    "`before_send` method has to return None or a valid event."
                )
            event_ = new_event

        session = final_scope.session
        if session is not None and not is_transaction:
            self._update_session_from_event(session, event_)

        return event_

    def _apply_client_options(self, event: "Event") -> None:
        options = self.options
        max_value_length = options["max_value_length"] or DEFAULT_MAX_VALUE_LENGTH

        if "environment" not in event:
            event["environment"] = options["environment"]

        for key in "release", "dist", "server_name":
            if event.get(key) is None and options[key] is not None:
                event[key] = options[key]

        if event.get("platform") is None:
            event["platform"] = "python"

        if event.get("message"):
            event["message"] = truncate(event["message"], max_value_length)

        exception = event.get("exception")
        values = exception.get("values") if exception else None
        if values and values[0].get("value"):
            first = dict(values[0])
            first["value"] = truncate(first["value"], max_value_length)
            event["exception"] = dict(exception, values=[first] + list(values[1:]))

        request = event.get("request")
        if request and request.get("url"):
            event["request"] = dict(
                request, url=truncate(request["url"], max_value_length)
            )

    def _apply_sdk_metadata(self, event: "Event") -> None:
        sdk = dict(event.get("sdk") or {})
        if sdk.get("name") is None:
            sdk["name"] = SDK_INFO["name"]
        if sdk.get("version") is None:
            sdk["version"] = SDK_INFO["version"]

        sdk["integrations"] = list(sdk.get("integrations") or []) + sorted(
            self.integrations.keys()
        )
        sdk["packages"] = (
            list(sdk.get("packages") or [])
            + list(SDK_INFO["packages"])
            + list(self.options["packages"] or [])
        )
        event["sdk"] = sdk

    def _normalize_event(self, event: "Event", depth: int) -> "Event":
        """
        Makes `breadcrumbs[].data`, `user`, `contexts` and `extra` safe for
        serialization. The trace context is kept as it was.
        """
        normalized = dict(event)  # type: Event

        breadcrumbs = event.get("breadcrumbs")
        if breadcrumbs:
            normalized["breadcrumbs"] = [
                dict(crumb, data=normalize(crumb["data"], depth))
                if crumb.get("data")
                else crumb
                for crumb in breadcrumbs
            ]

        for key in "user", "contexts", "extra":
            if event.get(key):
                normalized[key] = normalize(event[key], depth)  # type: ignore

        contexts = event.get("contexts")
        if contexts and contexts.get("trace"):
            normalized["contexts"]["trace"] = contexts["trace"]

        return normalized

    def _update_session_from_event(self, session: "Session", event: "Event") -> None:
        crashed = False
        errored = False

        exceptions = (event.get("exception") or {}).get("values")
        if exceptions:
            errored = True
            for ex in exceptions:
                mechanism = ex.get("mechanism")
                if mechanism and mechanism.get("handled") is False:
                    crashed = True
                    break

        user_agent = None
        if not session.user_agent:
            user_agent = _get_user_agent(event)

        session.update(
            status="crashed" if crashed else None,
            user=event.get("user"),
            user_agent=user_agent,
            errors=session.errors + int(errored or crashed),
        )
        self.capture_session(session)

    def _send_request(self, request: "TransportRequest") -> bool:
        try:
            task = self.transport.send_request(request)
        except TransportError as exc:
            logger.error("Failed sending request: %s", exc)
            return False

        task.add_done_callback(_log_request_failure)
        return True

    async def flush(self, timeout: "Optional[float]" = None) -> bool:
        """
        Wait `timeout` seconds for the current events to be sent. If no
        `timeout` is provided, the `shutdown_timeout` option value is used.

        Returns `False` if requests were still in flight when the timeout
        passed.
        """
        if timeout is None:
            timeout = self.options["shutdown_timeout"]
        return await self.transport.flush(timeout)

    async def close(self, timeout: "Optional[float]" = None) -> bool:
        """
        Flushes the transport and disables the client for good. Arguments
        have the same semantics as `self.flush()`.
        """
        rv = await self.flush(timeout=timeout)
        self._closed = True
        await self.transport.close()
        return rv

    async def __aenter__(self) -> "_Client":
        return self

    async def __aexit__(self, exc_type: "Any", exc_value: "Any", tb: "Any") -> None:
        await self.close()


if TYPE_CHECKING:
    # Make mypy, PyCharm and other static analyzers think `get_options` is a
    # type to have nicer autocompletion for params.
    #
    # Use `ClientConstructor` to define the argument types of `init` and
    # `Dict[str, Any]` to tell static analyzers about the return type.

    class get_options(ClientConstructor, Dict[str, Any]):  # noqa: N801
        pass

    class Client(ClientConstructor, _Client):
        pass

else:
    # Alias `get_options` for actual usage. Go through the lambda indirection
    # to throw PyCharm off of the weakly typed signature (it would otherwise
    # discover both the weakly typed signature of `_init` and our faked `init`
    # type).

    get_options = (lambda: _get_options)()
    Client = (lambda: _Client)()
