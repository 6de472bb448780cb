import uuid

from eventpipe.utils import now

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Any
    from typing import Dict
    from typing import Optional


class Span:
    """A unit of work that can be set as the active span on a scope."""

    __slots__ = (
        "trace_id",
        "span_id",
        "parent_span_id",
        "op",
        "description",
        "status",
        "sampled",
        "start_timestamp",
        "timestamp",
        "_containing_transaction",
    )

    def __init__(
        self,
        trace_id: "Optional[str]" = None,
        span_id: "Optional[str]" = None,
        parent_span_id: "Optional[str]" = None,
        op: "Optional[str]" = None,
        description: "Optional[str]" = None,
        status: "Optional[str]" = None,
        sampled: "Optional[bool]" = None,
        containing_transaction: "Optional[Transaction]" = None,
    ) -> None:
        self.trace_id = trace_id or uuid.uuid4().hex
        self.span_id = span_id or uuid.uuid4().hex[16:]
        self.parent_span_id = parent_span_id
        self.op = op
        self.description = description
        self.status = status
        self.sampled = sampled
        self.start_timestamp = now()  # type: datetime
        self.timestamp = None  # type: Optional[datetime]
        self._containing_transaction = containing_transaction

    def __repr__(self) -> str:
        return "<%s(op=%r, trace_id=%r, span_id=%r)>" % (
            self.__class__.__name__,
            self.op,
            self.trace_id,
            self.span_id,
        )

    @property
    def containing_transaction(self) -> "Optional[Transaction]":
        """The transaction this span belongs to, if any."""
        return self._containing_transaction

    def start_child(self, **kwargs: "Any") -> "Span":
        kwargs.setdefault("sampled", self.sampled)
        return Span(
            trace_id=self.trace_id,
            parent_span_id=self.span_id,
            containing_transaction=self.containing_transaction,
            **kwargs
        )

    def set_status(self, value: str) -> None:
        self.status = value

    def finish(self) -> None:
        if self.timestamp is None:
            self.timestamp = now()

    def get_trace_context(self) -> "Dict[str, Any]":
        rv = {
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "parent_span_id": self.parent_span_id,
            "op": self.op,
            "description": self.description,
        }  # type: Dict[str, Any]
        if self.status:
            rv["status"] = self.status

        return {k: v for k, v in rv.items() if v is not None}


class Transaction(Span):
    __slots__ = ("name",)

    def __init__(self, name: str = "", **kwargs: "Any") -> None:
        super().__init__(**kwargs)
        self.name = name

    def __repr__(self) -> str:
        return "<%s(name=%r, op=%r, trace_id=%r)>" % (
            self.__class__.__name__,
            self.name,
            self.op,
            self.trace_id,
        )

    @property
    def containing_transaction(self) -> "Transaction":
        return self
