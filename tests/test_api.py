import logging

import pytest

import eventpipe
from eventpipe import (
    add_breadcrumb,
    add_event_processor,
    capture_event,
    capture_exception,
    capture_message,
    get_client,
    get_scope,
    is_initialized,
    last_event_id,
)
from eventpipe.debug import _ClientBasedFilter

from tests.conftest import TEST_DSN, RecordingTransport


def test_get_client_without_init():
    client = get_client()

    assert not client.is_active()
    assert not is_initialized()
    assert get_client() is client


@pytest.mark.asyncio
async def test_capture_without_init_is_noop():
    assert await capture_message("hello") is None
    assert last_event_id() is None


def test_init_binds_client():
    client = eventpipe.init(TEST_DSN, transport=RecordingTransport)

    assert get_client() is client
    assert is_initialized()
    assert client.dsn == TEST_DSN

    eventpipe.bind_client(None)
    assert get_client() is not client


@pytest.mark.asyncio
async def test_module_level_functions(eventpipe_init, capture_events):
    eventpipe_init()
    transport = capture_events()

    get_scope().set_tag("component", "api")
    add_breadcrumb(message="clicked", category="ui")
    add_event_processor(lambda event, hint: dict(event, processed=True))

    event_id = await capture_message("hello", level="warning")
    assert last_event_id() == event_id

    await capture_exception(ValueError("bad"))
    await capture_event({"message": "raw"}, scope={"extra": {"raw": True}})

    message, error, raw = transport.events()
    assert message["level"] == "warning"
    assert message["tags"] == {"component": "api"}
    assert message["processed"] is True
    assert message["breadcrumbs"][0]["message"] == "clicked"
    assert error["exception"]["values"][0]["type"] == "ValueError"
    assert raw["extra"] == {"raw": True}

    assert await eventpipe.flush(timeout=1)
    assert await eventpipe.close(timeout=1)
    assert not is_initialized()


def test_docs_are_aliased():
    assert capture_message.__doc__.startswith(
        "Alias for :py:meth:`eventpipe.Client.capture_message`"
    )


def test_debug_filter(eventpipe_init):
    record = logging.LogRecord("eventpipe.errors", logging.INFO, "", 0, "x", (), None)
    debug_filter = _ClientBasedFilter()

    eventpipe_init(debug=False)
    assert not debug_filter.filter(record)

    eventpipe_init(debug=True)
    assert debug_filter.filter(record)


def test_clients_build_with_nothing_bound(monkeypatch):
    monkeypatch.setattr(eventpipe.api, "_noop_client", None)

    client = eventpipe.Client()
    assert client.is_active()

    fallback = get_client()
    assert fallback is not client
    assert not fallback.is_active()


def test_debug_filter_without_client(monkeypatch):
    monkeypatch.setattr(eventpipe.api, "_noop_client", None)
    record = logging.LogRecord("eventpipe.errors", logging.INFO, "", 0, "x", (), None)

    assert not _ClientBasedFilter().filter(record)
    # The filter does not build the fallback client
    assert eventpipe.api._noop_client is None
