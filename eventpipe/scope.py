import inspect
import time
from collections import deque
from collections.abc import Mapping

from eventpipe.consts import DEFAULT_MAX_BREADCRUMBS, MAX_BREADCRUMBS
from eventpipe.utils import logger

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any
    from typing import Callable
    from typing import Deque
    from typing import Dict
    from typing import Iterable
    from typing import List
    from typing import Optional
    from typing import TypeVar

    from eventpipe._types import (
        Breadcrumb,
        BreadcrumbHint,
        BreadcrumbProcessor,
        CaptureContext,
        Event,
        EventProcessor,
        Hint,
        LogLevelStr,
    )
    from eventpipe.session import Session
    from eventpipe.tracing import Span

    F = TypeVar("F", bound=Callable[..., Any])


global_event_processors: "List[EventProcessor]" = []


def add_global_event_processor(processor: "F") -> "F":
    """
    Registers an event processor that runs for every scope, before the
    scope's own processors. Can be used as a decorator.
    """
    global_event_processors.append(processor)
    return processor


class Scope:
    """The scope holds extra information that should be sent with all
    events that belong to it.
    """

    __slots__ = (
        "_level",
        "_fingerprint",
        "_transaction_name",
        "_user",
        "_tags",
        "_contexts",
        "_extras",
        "_breadcrumbs",
        "_event_processors",
        "_span",
        "_session",
        "_max_breadcrumbs",
        "_before_breadcrumb",
    )

    def __init__(
        self,
        max_breadcrumbs: int = DEFAULT_MAX_BREADCRUMBS,
        before_breadcrumb: "Optional[BreadcrumbProcessor]" = None,
    ) -> None:
        self._max_breadcrumbs = max_breadcrumbs
        self._before_breadcrumb = before_breadcrumb
        self._event_processors: "List[EventProcessor]" = []

        self.clear()

    def __copy__(self) -> "Scope":
        return self.clone()

    def clone(self) -> "Scope":
        """
        Returns a copy of this scope.

        Breadcrumbs, tags, extras, contexts and event processors are copied
        one level deep so that changes on either side stay local. User,
        level, fingerprint, span and session are shared by reference.
        """
        rv: "Scope" = object.__new__(self.__class__)

        rv._max_breadcrumbs = self._max_breadcrumbs
        rv._before_breadcrumb = self._before_breadcrumb

        rv._level = self._level
        rv._fingerprint = self._fingerprint
        rv._transaction_name = self._transaction_name
        rv._user = self._user

        rv._tags = self._tags.copy()
        rv._contexts = self._contexts.copy()
        rv._extras = self._extras.copy()

        rv._breadcrumbs = deque(self._breadcrumbs)
        rv._event_processors = self._event_processors.copy()

        rv._span = self._span
        rv._session = self._session

        return rv

    def clear(self) -> None:
        """Clears the entire scope. Event processors are kept."""
        self._level: "Optional[LogLevelStr]" = None
        self._fingerprint: "Optional[List[str]]" = None
        self._transaction_name: "Optional[str]" = None
        self._user: "Dict[str, Any]" = {}

        self._tags: "Dict[str, Any]" = {}
        self._contexts: "Dict[str, Dict[str, Any]]" = {}
        self._extras: "Dict[str, Any]" = {}

        self.clear_breadcrumbs()

        self._span: "Optional[Span]" = None
        self._session: "Optional[Session]" = None

    def clear_breadcrumbs(self) -> None:
        """Clears breadcrumb buffer."""
        self._breadcrumbs: "Deque[Breadcrumb]" = deque()

    @property
    def level(self) -> "Optional[LogLevelStr]":
        return self._level

    def set_level(self, value: "Optional[LogLevelStr]") -> None:
        """Sets the level for the scope."""
        self._level = value

    @property
    def fingerprint(self) -> "Optional[List[str]]":
        return self._fingerprint

    def set_fingerprint(self, value: "Optional[List[str]]") -> None:
        """When set this overrides the default fingerprint."""
        self._fingerprint = value

    @property
    def transaction_name(self) -> "Optional[str]":
        return self._transaction_name

    def set_transaction_name(self, name: "Optional[str]" = None) -> None:
        self._transaction_name = name

    @property
    def user(self) -> "Dict[str, Any]":
        return self._user

    def set_user(self, value: "Optional[Dict[str, Any]]") -> None:
        """Sets a user for the scope. `None` clears it."""
        self._user = value or {}
        if self._session is not None:
            self._session.update(user=self._user)

    @property
    def tags(self) -> "Dict[str, Any]":
        return self._tags

    def set_tag(self, key: str, value: "Any") -> None:
        self._tags[key] = value

    def set_tags(self, tags: "Mapping[str, Any]") -> None:
        """Sets multiple tags at once, keeping the ones not mentioned."""
        self._tags.update(tags)

    @property
    def extra(self) -> "Dict[str, Any]":
        return self._extras

    def set_extra(self, key: str, value: "Any") -> None:
        """Sets an extra key to a specific value."""
        self._extras[key] = value

    def set_extras(self, extras: "Mapping[str, Any]") -> None:
        self._extras.update(extras)

    @property
    def contexts(self) -> "Dict[str, Dict[str, Any]]":
        return self._contexts

    def set_context(self, key: str, value: "Optional[Dict[str, Any]]") -> None:
        """
        Binds a context at a certain key to a specific value. `None`
        removes the context.
        """
        if value is None:
            self._contexts.pop(key, None)
        else:
            self._contexts[key] = value

    @property
    def span(self) -> "Optional[Span]":
        """Get/set current tracing span or transaction."""
        return self._span

    @span.setter
    def span(self, span: "Optional[Span]") -> None:
        self._span = span

    @property
    def session(self) -> "Optional[Session]":
        return self._session

    @session.setter
    def session(self, session: "Optional[Session]") -> None:
        self._session = session

    @property
    def breadcrumbs(self) -> "List[Breadcrumb]":
        return list(self._breadcrumbs)

    @property
    def event_processors(self) -> "List[EventProcessor]":
        return list(self._event_processors)

    def add_event_processor(self, func: "EventProcessor") -> None:
        """Register a scope local event processor on the scope.

        :param func: This function behaves like `before_send.` and may
            return an awaitable.
        """
        self._event_processors.append(func)

    def add_breadcrumb(
        self,
        crumb: "Optional[Breadcrumb]" = None,
        hint: "Optional[BreadcrumbHint]" = None,
        **kwargs: "Any",
    ) -> None:
        """
        Adds a breadcrumb.

        :param crumb: Dictionary with the data of the breadcrumb.

        :param hint: An optional value that can be used by `before_breadcrumb`
            to customize the breadcrumbs that are emitted.
        """
        crumb = dict(crumb or ())
        crumb.update(kwargs)
        if not crumb:
            return

        hint = dict(hint or ())

        if crumb.get("timestamp") is None:
            crumb["timestamp"] = time.time()

        if self._before_breadcrumb is not None:
            new_crumb = self._before_breadcrumb(crumb, hint)
        else:
            new_crumb = crumb

        if new_crumb is None:
            logger.info("before breadcrumb dropped breadcrumb (%s)", crumb)
            return

        self._breadcrumbs.append(new_crumb)

        max_breadcrumbs = min(self._max_breadcrumbs, MAX_BREADCRUMBS)
        while len(self._breadcrumbs) > max_breadcrumbs:
            self._breadcrumbs.popleft()

    def update(self, capture_context: "Optional[CaptureContext]") -> "Scope":
        """
        Merges `capture_context` into this scope and returns it.

        Accepts another scope, a mapping with the keys `tags`, `extra`,
        `contexts`, `user`, `level` and `fingerprint`, or a callable that
        receives this scope and returns the scope to use. Values from
        `capture_context` win on key collisions.
        """
        if capture_context is None:
            return self

        if isinstance(capture_context, Scope):
            self._update_from_kwargs(
                tags=capture_context._tags,
                extra=capture_context._extras,
                contexts=capture_context._contexts,
                user=capture_context._user,
                level=capture_context._level,
                fingerprint=capture_context._fingerprint,
            )
        elif isinstance(capture_context, Mapping):
            self._update_from_kwargs(
                tags=capture_context.get("tags"),
                extra=capture_context.get("extra"),
                contexts=capture_context.get("contexts"),
                user=capture_context.get("user"),
                level=capture_context.get("level"),
                fingerprint=capture_context.get("fingerprint"),
            )
        elif callable(capture_context):
            updated = capture_context(self)
            if isinstance(updated, Scope):
                return updated

        return self

    def _update_from_kwargs(
        self,
        tags: "Optional[Mapping[str, Any]]" = None,
        extra: "Optional[Mapping[str, Any]]" = None,
        contexts: "Optional[Mapping[str, Dict[str, Any]]]" = None,
        user: "Optional[Dict[str, Any]]" = None,
        level: "Optional[LogLevelStr]" = None,
        fingerprint: "Optional[List[str]]" = None,
    ) -> None:
        if tags:
            self._tags.update(tags)
        if extra:
            self._extras.update(extra)
        if contexts:
            self._contexts.update(contexts)
        if user:
            self._user = user
        if level:
            self._level = level
        if fingerprint:
            self._fingerprint = fingerprint

    def _apply_fingerprint_to_event(self, event: "Event") -> None:
        fingerprint = event.get("fingerprint")
        if fingerprint is None:
            fingerprint = []
        elif isinstance(fingerprint, str):
            fingerprint = [fingerprint]
        else:
            fingerprint = list(fingerprint)

        if self._fingerprint:
            fingerprint.extend(self._fingerprint)

        if fingerprint:
            event["fingerprint"] = fingerprint
        else:
            event.pop("fingerprint", None)

    def _apply_breadcrumbs_to_event(self, event: "Event") -> None:
        breadcrumbs = list(event.get("breadcrumbs") or ())
        breadcrumbs.extend(self._breadcrumbs)
        if breadcrumbs:
            event["breadcrumbs"] = breadcrumbs
        else:
            event.pop("breadcrumbs", None)

    def _apply_span_to_event(self, event: "Event") -> None:
        if self._span is None:
            return

        contexts = event.get("contexts") or {}
        if contexts.get("trace") is None:
            event["contexts"] = dict(contexts, trace=self._span.get_trace_context())

        transaction = self._span.containing_transaction
        if transaction is not None and transaction.name:
            tags = event.get("tags") or {}
            if "transaction" not in tags:
                event["tags"] = dict(tags, transaction=transaction.name)

    async def apply_to_event(
        self,
        event: "Event",
        hint: "Optional[Hint]" = None,
    ) -> "Optional[Event]":
        """
        Applies the information contained on the scope to the given event
        and runs the global and scope event processors over it.

        Values already present on the event win over the scope's.
        """
        if self._extras:
            event["extra"] = {**self._extras, **(event.get("extra") or {})}
        if self._tags:
            event["tags"] = {**self._tags, **(event.get("tags") or {})}
        if self._user:
            event["user"] = {**self._user, **(event.get("user") or {})}
        if self._contexts:
            event["contexts"] = {**self._contexts, **(event.get("contexts") or {})}
        if self._level and not event.get("level"):
            event["level"] = self._level
        if self._transaction_name and not event.get("transaction"):
            event["transaction"] = self._transaction_name

        self._apply_span_to_event(event)
        self._apply_fingerprint_to_event(event)
        self._apply_breadcrumbs_to_event(event)

        return await self._notify_event_processors(
            [*global_event_processors, *self._event_processors], event, hint or {}
        )

    async def _notify_event_processors(
        self,
        processors: "Iterable[EventProcessor]",
        event: "Optional[Event]",
        hint: "Hint",
    ) -> "Optional[Event]":
        """
        Folds `event` through `processors` in order. Every processor gets
        its own shallow copy of the event; returning `None` stops the chain.
        """
        for processor in processors:
            if event is None:
                break
            rv = processor(dict(event), hint)  # type: ignore
            if inspect.isawaitable(rv):
                rv = await rv
            if rv is None:
                return self._drop(processor, "event processor")
            event = rv

        return event

    def _drop(self, cause: "Any", ty: str) -> None:
        logger.info("%s (%s) dropped event", ty, cause)
        return None

    def __repr__(self) -> str:
        return "<%s id=%s tags=%d breadcrumbs=%d>" % (
            self.__class__.__name__,
            hex(id(self)),
            len(self._tags),
            len(self._breadcrumbs),
        )
