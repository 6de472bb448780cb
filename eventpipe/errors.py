from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Optional


class EventpipeError(Exception):
    """Base class for every error raised by eventpipe."""


class EventDropped(EventpipeError):
    """
    An event was rejected by the processing pipeline.

    These never reach the host application. The client logs them and
    `capture_event` returns `None`.
    """

    #: Short tag used in log lines and outcome reporting.
    reason = "unknown"


class ClientDisabled(EventDropped):
    reason = "client_disabled"


class SampledOut(EventDropped):
    reason = "sample_rate"


class FilteredByProcessor(EventDropped):
    reason = "event_processor"


class InvalidFilterResult(EventDropped):
    reason = "invalid_before_send"


class FilteredByUser(EventDropped):
    reason = "before_send"


class PipelineFailure(EventDropped):
    reason = "internal_error"


class TransportError(EventpipeError):
    """Delivery of a transport request failed or was refused."""


class RateLimited(TransportError):
    def __init__(self, category: str, retry_at: "Optional[datetime]" = None) -> None:
        self.category = category
        self.retry_at = retry_at
        super().__init__(
            "Transport for %s requests locked till %s due to too many requests."
            % (category, retry_at)
        )


class BufferFull(TransportError):
    def __init__(self, limit: "Optional[int]" = None) -> None:
        self.limit = limit
        super().__init__("Not adding task due to buffer limit reached.")


class NetworkFailure(TransportError):
    def __init__(self, reason: str, status: "Optional[int]" = None) -> None:
        self.reason = reason
        self.status = status
        super().__init__(reason)
