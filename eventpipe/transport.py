import asyncio
import inspect
import ssl
from enum import Enum

import aiohttp
import certifi

from eventpipe.buffer import AsyncBuffer
from eventpipe.consts import DEFAULT_BUFFER_SIZE
from eventpipe.errors import NetworkFailure, RateLimited
from eventpipe.ratelimits import disabled_until, is_rate_limited, update_rate_limits
from eventpipe.utils import Dsn, logger

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any
    from typing import Awaitable
    from typing import Callable
    from typing import Dict
    from typing import Mapping
    from typing import Optional
    from typing import Type
    from typing import Union

    from eventpipe._types import RateLimits
    from eventpipe.envelope import TransportRequest

    RequestMaker = Callable[
        [TransportRequest],
        Union["TransportMakerResponse", Awaitable["TransportMakerResponse"]],
    ]


class ResponseStatus(Enum):
    UNKNOWN = "unknown"
    SKIPPED = "skipped"
    SUCCESS = "success"
    RATE_LIMIT = "rate_limit"
    INVALID = "invalid"
    FAILED = "failed"

    @classmethod
    def from_status_code(cls, code: int) -> "ResponseStatus":
        if 200 <= code < 300:
            return cls.SUCCESS
        if code == 429:
            return cls.RATE_LIMIT
        if 400 <= code < 500:
            return cls.INVALID
        if code >= 500:
            return cls.FAILED
        return cls.UNKNOWN


class TransportResponse:
    __slots__ = ("status", "reason")

    def __init__(self, status: ResponseStatus, reason: "Optional[str]" = None) -> None:
        self.status = status
        self.reason = reason

    def __repr__(self) -> str:
        return "<TransportResponse status=%s reason=%r>" % (
            self.status.value,
            self.reason,
        )


class TransportMakerResponse:
    """What a request maker reports back about one HTTP exchange."""

    __slots__ = ("status_code", "headers", "body", "reason")

    def __init__(
        self,
        status_code: int,
        headers: "Optional[Mapping[str, str]]" = None,
        body: "Optional[str]" = None,
        reason: "Optional[str]" = None,
    ) -> None:
        self.status_code = status_code
        self.headers = headers or {}
        self.body = body
        self.reason = reason


class Transport:
    """Baseclass for all transports.

    A transport hands serialized envelopes to the collector. It owns the
    rate limits reported back by the collector and the buffer bounding the
    number of requests in flight.
    """

    parsed_dsn: "Optional[Dsn]" = None

    def __init__(self, options: "Optional[Dict[str, Any]]" = None) -> None:
        self.options = options
        if options and options.get("dsn"):
            self.parsed_dsn = Dsn(options["dsn"])
        else:
            self.parsed_dsn = None

        buffer_size = DEFAULT_BUFFER_SIZE
        if options and options.get("transport_buffer_size"):
            buffer_size = options["transport_buffer_size"]
        self._buffer = AsyncBuffer(buffer_size)
        self._rate_limits: "RateLimits" = {}

    @property
    def rate_limits(self) -> "RateLimits":
        return self._rate_limits

    @property
    def buffer(self) -> AsyncBuffer:
        return self._buffer

    def send_request(
        self, request: "TransportRequest"
    ) -> "asyncio.Future[TransportResponse]":
        """
        Queues `request` for delivery and returns the task performing it.

        Raises `RateLimited` when the request's category is currently
        disabled and `BufferFull` when too many requests are in flight.
        Neither calls the request maker.
        """
        if is_rate_limited(self._rate_limits, request.category):
            raise RateLimited(
                request.category, disabled_until(self._rate_limits, request.category)
            )

        return self._buffer.add(lambda: self._send(request))

    async def _send(self, request: "TransportRequest") -> TransportResponse:
        response = await self._make_request(request)

        # Rate limits are updated no matter the status code
        self._rate_limits = update_rate_limits(self._rate_limits, response.headers)

        status = ResponseStatus.from_status_code(response.status_code)
        if status is ResponseStatus.SUCCESS:
            return TransportResponse(status)

        raise NetworkFailure(
            response.body or response.reason or "Unknown transport error",
            status=response.status_code,
        )

    async def _make_request(
        self, request: "TransportRequest"
    ) -> TransportMakerResponse:
        """Performs the actual network call for one request."""
        raise NotImplementedError()

    async def flush(self, timeout: "Optional[float]" = None) -> bool:
        """Wait up to `timeout` seconds for the requests in flight to settle."""
        logger.debug("Flushing transport")
        return await self._buffer.drain(timeout)

    async def close(self) -> None:
        """Releases resources held by the transport."""
        pass


class NoopTransport(Transport):
    """Used when no DSN is configured. Nothing leaves the process."""

    def send_request(
        self, request: "TransportRequest"
    ) -> "asyncio.Future[TransportResponse]":
        future: "asyncio.Future[TransportResponse]" = (
            asyncio.get_running_loop().create_future()
        )
        future.set_result(TransportResponse(ResponseStatus.SKIPPED))
        return future

    async def flush(self, timeout: "Optional[float]" = None) -> bool:
        return True


class AioHttpTransport(Transport):
    """The default HTTP transport, posting envelopes with `aiohttp`."""

    def __init__(self, options: "Dict[str, Any]") -> None:
        Transport.__init__(self, options)
        assert self.parsed_dsn is not None
        self._session: "Optional[aiohttp.ClientSession]" = None
        self._use_query_auth = options.get("transport_auth") == "query"
        self._http_proxy = options.get("http_proxy")
        self._ca_certs = options.get("ca_certs")
        self._ssl_context: "Optional[ssl.SSLContext]" = None

    @property
    def is_closed(self) -> bool:
        return self._session is None or self._session.closed

    @property
    def url(self) -> str:
        assert self.parsed_dsn is not None
        if self._use_query_auth:
            return self.parsed_dsn.envelope_endpoint_with_auth
        return self.parsed_dsn.envelope_endpoint

    def _get_ssl_context(self) -> "ssl.SSLContext":
        if self._ssl_context is None:
            self._ssl_context = ssl.create_default_context(
                cafile=self._ca_certs or certifi.where()
            )
        return self._ssl_context

    def _get_session(self) -> "aiohttp.ClientSession":
        session = self._session
        if session is None or session.closed:
            assert self.parsed_dsn is not None
            headers = {"Content-Type": "application/json"}
            if not self._use_query_auth:
                headers = self.parsed_dsn.auth_headers()
            self._session = session = aiohttp.ClientSession(headers=headers)
        return session

    async def _make_request(
        self, request: "TransportRequest"
    ) -> TransportMakerResponse:
        assert self.parsed_dsn is not None
        logger.debug(
            "Sending %s envelope to %s project:%s",
            request.category,
            self.parsed_dsn.host,
            self.parsed_dsn.project_id,
        )

        session = self._get_session()
        try:
            async with session.post(
                self.url,
                data=request.body,
                proxy=self._http_proxy,
                ssl=self._get_ssl_context(),
            ) as response:
                body = await response.text()
                return TransportMakerResponse(
                    status_code=response.status,
                    headers=response.headers,
                    body=body or None,
                    reason=response.reason,
                )
        except aiohttp.ClientError as exc:
            raise NetworkFailure(str(exc) or type(exc).__name__) from exc

    async def close(self) -> None:
        logger.debug("Closing HTTP transport")
        session = self._session
        self._session = None
        if session is not None and not session.closed:
            await session.close()


class _FunctionTransport(Transport):
    def __init__(
        self, func: "RequestMaker", options: "Optional[Dict[str, Any]]" = None
    ) -> None:
        Transport.__init__(self, options)
        self._func = func

    async def _make_request(
        self, request: "TransportRequest"
    ) -> TransportMakerResponse:
        rv = self._func(request)
        if inspect.isawaitable(rv):
            rv = await rv
        return rv


def make_transport(options: "Dict[str, Any]") -> Transport:
    ref_transport = options["transport"]

    # If no transport is given, we use the http transport class
    if ref_transport is None:
        if not options["dsn"]:
            return NoopTransport(options)
        transport_cls: "Type[Transport]" = AioHttpTransport
    elif isinstance(ref_transport, Transport):
        return ref_transport
    elif isinstance(ref_transport, type) and issubclass(ref_transport, Transport):
        transport_cls = ref_transport
    elif callable(ref_transport):
        return _FunctionTransport(ref_transport, options)
    else:
        raise TypeError("Invalid transport %r" % (ref_transport,))

    return transport_cls(options)
