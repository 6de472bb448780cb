import copy

import pytest

from eventpipe import Scope, Session, add_global_event_processor
from eventpipe.tracing import Span, Transaction


def test_breadcrumbs_are_capped():
    scope = Scope(max_breadcrumbs=5)
    for i in range(10):
        scope.add_breadcrumb(message="crumb %s" % i)

    assert [crumb["message"] for crumb in scope.breadcrumbs] == [
        "crumb 5",
        "crumb 6",
        "crumb 7",
        "crumb 8",
        "crumb 9",
    ]


def test_max_breadcrumbs_cannot_exceed_hard_limit():
    scope = Scope(max_breadcrumbs=500)
    for i in range(150):
        scope.add_breadcrumb(message=str(i))

    assert len(scope.breadcrumbs) == 100
    assert scope.breadcrumbs[0]["message"] == "50"


def test_breadcrumb_gets_timestamp():
    scope = Scope()
    scope.add_breadcrumb({"message": "hello"})
    scope.add_breadcrumb({"message": "explicit", "timestamp": 42})

    first, second = scope.breadcrumbs
    assert isinstance(first["timestamp"], float)
    assert second["timestamp"] == 42


def test_empty_breadcrumb_is_ignored():
    scope = Scope()
    scope.add_breadcrumb()
    assert scope.breadcrumbs == []


def test_before_breadcrumb():
    seen_hints = []

    def before_breadcrumb(crumb, hint):
        seen_hints.append(hint)
        if crumb["category"] == "noise":
            return None
        crumb["data"] = {"rewritten": True}
        return crumb

    scope = Scope(before_breadcrumb=before_breadcrumb)
    scope.add_breadcrumb(category="noise")
    scope.add_breadcrumb({"category": "http"}, {"response": 200})

    (crumb,) = scope.breadcrumbs
    assert crumb["category"] == "http"
    assert crumb["data"] == {"rewritten": True}
    assert seen_hints == [{}, {"response": 200}]


def test_clone_is_independent():
    scope = Scope()
    scope.set_tag("a", 1)
    scope.set_extra("b", 2)
    scope.set_context("c", {"d": 3})
    scope.add_breadcrumb(message="first")

    clone = scope.clone()
    clone.set_tag("a", "changed")
    clone.set_extra("new", True)
    clone.set_context("other", {})
    clone.add_breadcrumb(message="second")
    clone.add_event_processor(lambda event, hint: event)

    assert scope.tags == {"a": 1}
    assert scope.extra == {"b": 2}
    assert scope.contexts == {"c": {"d": 3}}
    assert len(scope.breadcrumbs) == 1
    assert scope.event_processors == []

    assert clone.tags == {"a": "changed"}
    assert len(clone.breadcrumbs) == 2


def test_copy_uses_clone():
    scope = Scope()
    scope.set_tag("a", 1)
    clone = copy.copy(scope)
    clone.set_tag("a", 2)
    assert scope.tags == {"a": 1}


def test_clear_keeps_processors():
    scope = Scope()
    scope.add_event_processor(lambda event, hint: event)
    scope.set_tag("a", 1)
    scope.set_level("warning")
    scope.add_breadcrumb(message="crumb")

    scope.clear()

    assert scope.tags == {}
    assert scope.level is None
    assert scope.breadcrumbs == []
    assert len(scope.event_processors) == 1


def test_set_context_none_removes():
    scope = Scope()
    scope.set_context("os", {"name": "linux"})
    scope.set_context("os", None)
    assert scope.contexts == {}


def test_set_user_updates_session():
    scope = Scope()
    scope.session = Session(release="app@1.0")
    scope.set_user({"id": "42", "ip_address": "127.0.0.1"})

    assert scope.session.did == "42"
    assert scope.session.ip_address == "127.0.0.1"

    scope.set_user(None)
    assert scope.user == {}


def test_update_from_mapping():
    scope = Scope()
    scope.set_tag("keep", 1)
    scope.set_tag("override", "old")

    rv = scope.update(
        {
            "tags": {"override": "new"},
            "extra": {"e": 1},
            "user": {"id": "1"},
            "level": "fatal",
            "fingerprint": ["custom"],
        }
    )

    assert rv is scope
    assert scope.tags == {"keep": 1, "override": "new"}
    assert scope.extra == {"e": 1}
    assert scope.user == {"id": "1"}
    assert scope.level == "fatal"
    assert scope.fingerprint == ["custom"]


def test_update_from_scope():
    other = Scope()
    other.set_tag("from", "other")
    other.set_level("debug")

    scope = Scope()
    scope.set_level("error")
    scope.update(other)

    assert scope.tags == {"from": "other"}
    assert scope.level == "debug"


def test_update_from_callable():
    scope = Scope()
    replacement = Scope()

    assert scope.update(lambda s: replacement) is replacement
    assert scope.update(lambda s: s.set_tag("a", 1)) is scope
    assert scope.tags == {"a": 1}


def test_update_none():
    scope = Scope()
    assert scope.update(None) is scope


@pytest.mark.asyncio
async def test_event_values_win_over_scope():
    scope = Scope()
    scope.set_tags({"shared": "scope", "only_scope": 1})
    scope.set_extra("shared", "scope")
    scope.set_user({"id": "scope", "email": "a@example.com"})
    scope.set_context("os", {"name": "scope"})
    scope.set_level("warning")
    scope.set_transaction_name("scope-transaction")

    event = await scope.apply_to_event(
        {
            "tags": {"shared": "event"},
            "extra": {"shared": "event"},
            "user": {"id": "event"},
            "contexts": {"os": {"name": "event"}},
            "level": "error",
            "transaction": "event-transaction",
        }
    )

    assert event["tags"] == {"shared": "event", "only_scope": 1}
    assert event["extra"] == {"shared": "event"}
    assert event["user"] == {"id": "event", "email": "a@example.com"}
    assert event["contexts"] == {"os": {"name": "event"}}
    assert event["level"] == "error"
    assert event["transaction"] == "event-transaction"


@pytest.mark.asyncio
async def test_scope_fills_missing_values():
    scope = Scope()
    scope.set_level("warning")
    scope.set_transaction_name("checkout")

    event = await scope.apply_to_event({"message": "hello"})

    assert event["level"] == "warning"
    assert event["transaction"] == "checkout"
    assert "tags" not in event
    assert "breadcrumbs" not in event
    assert "fingerprint" not in event


@pytest.mark.asyncio
async def test_fingerprint_and_breadcrumbs_are_merged():
    scope = Scope()
    scope.set_fingerprint(["scope"])
    scope.add_breadcrumb(message="from scope")

    event = await scope.apply_to_event(
        {
            "fingerprint": ["event"],
            "breadcrumbs": [{"message": "from event"}],
        }
    )

    assert event["fingerprint"] == ["event", "scope"]
    assert [crumb["message"] for crumb in event["breadcrumbs"]] == [
        "from event",
        "from scope",
    ]


@pytest.mark.asyncio
async def test_span_trace_context():
    transaction = Transaction(name="GET /users", op="http.server")
    child = transaction.start_child(op="db", description="SELECT 1")

    scope = Scope()
    scope.span = child
    event = await scope.apply_to_event({})

    trace = event["contexts"]["trace"]
    assert trace["trace_id"] == transaction.trace_id
    assert trace["span_id"] == child.span_id
    assert trace["parent_span_id"] == transaction.span_id
    assert trace["op"] == "db"
    assert event["tags"] == {"transaction": "GET /users"}

    # An existing trace context is left alone
    event = await scope.apply_to_event(
        {"contexts": {"trace": {"trace_id": "abc"}}, "tags": {"transaction": "x"}}
    )
    assert event["contexts"]["trace"] == {"trace_id": "abc"}
    assert event["tags"] == {"transaction": "x"}


@pytest.mark.asyncio
async def test_span_without_transaction():
    scope = Scope()
    scope.span = Span(op="task")
    event = await scope.apply_to_event({})

    assert event["contexts"]["trace"]["op"] == "task"
    assert "tags" not in event


@pytest.mark.asyncio
async def test_processor_order_and_copies():
    calls = []

    @add_global_event_processor
    def global_processor(event, hint):
        calls.append(("global", hint))
        event["global"] = True
        return event

    async def scope_processor(event, hint):
        calls.append(("scope", hint))
        assert event["global"] is True
        return event

    scope = Scope()
    scope.add_event_processor(scope_processor)

    original = {"message": "hello"}
    event = await scope.apply_to_event(original, {"key": "value"})

    assert [name for name, _ in calls] == ["global", "scope"]
    assert calls[0][1] == {"key": "value"}
    assert event["global"] is True
    assert "global" not in original


@pytest.mark.asyncio
async def test_processor_returning_none_stops_chain():
    calls = []

    def dropper(event, hint):
        calls.append("dropper")
        return None

    def after(event, hint):
        calls.append("after")
        return event

    scope = Scope()
    scope.add_event_processor(dropper)
    scope.add_event_processor(after)

    assert await scope.apply_to_event({"message": "hello"}) is None
    assert calls == ["dropper"]


@pytest.mark.asyncio
async def test_short_circuit_skips_later_processors():
    calls = []

    def p1(event, hint):
        calls.append("p1")
        return event

    def p2(event, hint):
        calls.append("p2")
        return None

    def p3(event, hint):
        calls.append("p3")
        return event

    scope = Scope()
    rv = await scope._notify_event_processors([p1, p2, p3], {"message": "x"}, {})

    assert rv is None
    assert calls == ["p1", "p2"]


@pytest.mark.asyncio
async def test_fingerprint_merge():
    scope = Scope()
    scope.set_fingerprint(["foo"])
    event = await scope.apply_to_event({"fingerprint": ["bar"]})
    assert event["fingerprint"] == ["bar", "foo"]

    event = await Scope().apply_to_event({"fingerprint": "single"})
    assert event["fingerprint"] == ["single"]

    event = await Scope().apply_to_event({"fingerprint": []})
    assert "fingerprint" not in event
