import pytest
from aiohttp import web
from aiohttp import test_utils

from eventpipe.envelope import TransportRequest
from eventpipe.errors import NetworkFailure, RateLimited
from eventpipe.transport import (
    AioHttpTransport,
    NoopTransport,
    ResponseStatus,
    Transport,
    TransportMakerResponse,
    make_transport,
)

from tests.conftest import TEST_DSN, RecordingTransport


def _options(**kwargs):
    rv = {
        "dsn": TEST_DSN,
        "transport": None,
        "transport_buffer_size": 30,
        "transport_auth": "header",
        "http_proxy": None,
        "ca_certs": None,
    }
    rv.update(kwargs)
    return rv


@pytest.mark.parametrize(
    "status_code,expected",
    [
        (200, ResponseStatus.SUCCESS),
        (202, ResponseStatus.SUCCESS),
        (429, ResponseStatus.RATE_LIMIT),
        (400, ResponseStatus.INVALID),
        (413, ResponseStatus.INVALID),
        (500, ResponseStatus.FAILED),
        (503, ResponseStatus.FAILED),
        (302, ResponseStatus.UNKNOWN),
    ],
)
def test_response_status(status_code, expected):
    assert ResponseStatus.from_status_code(status_code) is expected


def test_make_transport():
    assert isinstance(make_transport(_options(dsn=None)), NoopTransport)
    assert isinstance(make_transport(_options()), AioHttpTransport)

    instance = RecordingTransport()
    assert make_transport(_options(transport=instance)) is instance

    transport = make_transport(_options(transport=RecordingTransport))
    assert isinstance(transport, RecordingTransport)
    assert str(transport.parsed_dsn) == TEST_DSN

    transport = make_transport(
        _options(transport=lambda request: TransportMakerResponse(200))
    )
    assert isinstance(transport, Transport)

    with pytest.raises(TypeError):
        make_transport(_options(transport="nope"))


def test_buffer_size_option():
    transport = make_transport(_options(transport_buffer_size=3))
    assert transport.buffer.limit == 3


@pytest.mark.asyncio
async def test_function_transport():
    requests = []

    async def maker(request):
        requests.append(request)
        return TransportMakerResponse(200)

    transport = make_transport(_options(transport=maker))
    request = TransportRequest(b"{}", "error")

    response = await transport.send_request(request)
    assert response.status is ResponseStatus.SUCCESS
    assert requests == [request]


@pytest.mark.asyncio
async def test_failure_response():
    transport = make_transport(
        _options(
            transport=lambda request: TransportMakerResponse(
                400, body="invalid envelope"
            )
        )
    )

    with pytest.raises(NetworkFailure) as excinfo:
        await transport.send_request(TransportRequest(b"{}", "error"))

    assert excinfo.value.status == 400
    assert excinfo.value.reason == "invalid envelope"


@pytest.mark.asyncio
async def test_rate_limits_are_honoured():
    calls = []

    def maker(request):
        calls.append(request)
        return TransportMakerResponse(
            429, headers={"X-Sentry-Rate-Limits": "60:error:key"}
        )

    transport = make_transport(_options(transport=maker))

    with pytest.raises(NetworkFailure) as excinfo:
        await transport.send_request(TransportRequest(b"{}", "error"))
    assert excinfo.value.status == 429

    with pytest.raises(RateLimited) as excinfo:
        transport.send_request(TransportRequest(b"{}", "error"))
    assert excinfo.value.category == "error"
    assert excinfo.value.retry_at == transport.rate_limits["error"]
    assert len(calls) == 1

    # Other categories are not affected
    with pytest.raises(NetworkFailure):
        await transport.send_request(TransportRequest(b"{}", "session"))
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_rate_limits_from_successful_response():
    transport = make_transport(
        _options(
            transport=lambda request: TransportMakerResponse(
                200, headers={"Retry-After": "60"}
            )
        )
    )

    await transport.send_request(TransportRequest(b"{}", "session"))
    with pytest.raises(RateLimited):
        transport.send_request(TransportRequest(b"{}", "transaction"))


@pytest.mark.asyncio
async def test_noop_transport():
    transport = NoopTransport()
    future = transport.send_request(TransportRequest(b"{}", "error"))
    assert future.done()
    assert future.result().status is ResponseStatus.SKIPPED
    assert len(transport.buffer) == 0
    assert await transport.flush(0)


def test_aiohttp_transport_urls():
    transport = AioHttpTransport(_options())
    assert transport.url == "https://collector.example.com/api/42/envelope/"

    transport = AioHttpTransport(_options(transport_auth="query"))
    assert transport.url == (
        "https://collector.example.com/api/42/envelope/"
        "?sentry_key=public&sentry_version=7"
    )


@pytest.mark.asyncio
async def test_aiohttp_transport_posts_envelopes():
    received = []

    async def handler(request):
        received.append((dict(request.headers), await request.read()))
        return web.Response(
            status=200, headers={"X-Sentry-Rate-Limits": "60:session:key"}
        )

    app = web.Application()
    app.router.add_post("/api/42/envelope/", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        transport = AioHttpTransport(
            _options(dsn="http://public@127.0.0.1:%s/42" % server.port)
        )
        response = await transport.send_request(
            TransportRequest(b'{"event_id":"abc"}', "error")
        )
        await transport.close()
    finally:
        await server.close()

    assert response.status is ResponseStatus.SUCCESS
    ((headers, body),) = received
    assert body == b'{"event_id":"abc"}'
    assert headers["Content-Type"] == "application/json"
    assert headers["X-Sentry-Auth"].startswith(
        "Sentry sentry_key=public, sentry_version=7, sentry_client=eventpipe.python/"
    )
    assert "session" in transport.rate_limits
    assert transport.is_closed


@pytest.mark.asyncio
async def test_aiohttp_transport_reports_server_errors():
    async def handler(request):
        return web.Response(status=500, text="internal")

    app = web.Application()
    app.router.add_post("/api/42/envelope/", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        transport = AioHttpTransport(
            _options(dsn="http://public@127.0.0.1:%s/42" % server.port)
        )
        with pytest.raises(NetworkFailure) as excinfo:
            await transport.send_request(TransportRequest(b"{}", "error"))
        await transport.close()
    finally:
        await server.close()

    assert excinfo.value.status == 500
    assert excinfo.value.reason == "internal"
