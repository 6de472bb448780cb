import weakref

from eventpipe.integrations import Integration
from eventpipe.utils import logger

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any
    from typing import Optional

    from eventpipe._types import Event, Hint
    from eventpipe.client import _Client


class DedupeIntegration(Integration):
    """Drops an error event when it reports the very exception object seen last."""

    identifier = "dedupe"

    def __init__(self) -> None:
        self._last_seen = None  # type: Optional[Any]

    def setup(self, client: "_Client") -> None:
        client.add_event_processor(self.process_event)

    def _get_last_seen(self) -> "Optional[BaseException]":
        last_seen = self._last_seen
        # last_seen is either a weakref or the original instance
        if isinstance(last_seen, weakref.ref):
            return last_seen()
        return last_seen

    def process_event(self, event: "Event", hint: "Optional[Hint]") -> "Optional[Event]":
        if not hint:
            return event

        exc = hint.get("original_exception")
        if exc is None:
            exc_info = hint.get("exc_info")
            if exc_info is not None:
                exc = exc_info[1]
        if exc is None:
            return event

        if self._get_last_seen() is exc:
            logger.info("DedupeIntegration dropped duplicated error event %s", exc)
            # Only the immediate repeat is dropped
            self._last_seen = None
            return None

        # we can only weakref non builtin types
        try:
            self._last_seen = weakref.ref(exc)
        except TypeError:
            self._last_seen = exc

        return event

    def reset_last_seen(self) -> None:
        self._last_seen = None
