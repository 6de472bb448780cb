import pytest

import eventpipe
import eventpipe.utils
from eventpipe import scope
from eventpipe.envelope import Envelope
from eventpipe.transport import Transport, TransportMakerResponse

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any, Dict, List, Optional

    from eventpipe.envelope import TransportRequest


TEST_DSN = "https://public@collector.example.com/42"


@pytest.fixture(autouse=True)
def clean_state():
    """
    Resets the bound client and the global processors for every test to
    avoid leaking data between tests.
    """
    eventpipe.bind_client(None)
    del scope.global_event_processors[:]
    yield
    eventpipe.bind_client(None)
    del scope.global_event_processors[:]


@pytest.fixture(autouse=True)
def internal_exceptions(request, monkeypatch):
    errors = []
    if "tests_internal_exceptions" in request.keywords:
        yield errors
        return

    def _capture_internal_exception(exc_info):
        errors.append(exc_info)

    monkeypatch.setattr(
        eventpipe.utils, "capture_internal_exception", _capture_internal_exception
    )
    yield errors

    # reraise the errors so that this just acts as a pass-through
    for _, exc_value, _ in errors:
        raise exc_value


class RecordingTransport(Transport):
    """Keeps every request handed to it and answers with a canned response."""

    def __init__(self, options=None, status_code=200, headers=None):
        Transport.__init__(self, options)
        self.requests = []  # type: List[TransportRequest]
        self.sent = []  # type: List[TransportRequest]
        self.status_code = status_code
        self.headers = headers or {}  # type: Dict[str, str]

    def send_request(self, request):
        task = Transport.send_request(self, request)
        self.requests.append(request)
        return task

    async def _make_request(self, request):
        self.sent.append(request)
        return TransportMakerResponse(self.status_code, headers=self.headers)

    def envelopes(self):
        # type: () -> List[Envelope]
        return [Envelope.deserialize(request.body) for request in self.requests]

    def events(self):
        # type: () -> List[Dict[str, Any]]
        rv = []
        for envelope in self.envelopes():
            event = envelope.get_event()
            if event is not None:
                rv.append(event)
        return rv

    def sessions(self):
        # type: () -> List[Dict[str, Any]]
        return [
            item.payload.json
            for envelope in self.envelopes()
            for item in envelope
            if item.type == "session"
        ]


@pytest.fixture
def eventpipe_init():
    def inner(*a, **kw):
        # type: (*Any, **Any) -> eventpipe.Client
        kw.setdefault("dsn", TEST_DSN)
        kw.setdefault("transport", RecordingTransport)
        client = eventpipe.Client(*a, **kw)
        eventpipe.bind_client(client)
        return client

    return inner


@pytest.fixture
def capture_events():
    def inner(client=None):
        # type: (Optional[eventpipe.Client]) -> RecordingTransport
        if client is None:
            client = eventpipe.get_client()
        assert isinstance(client.transport, RecordingTransport)
        return client.transport

    return inner
