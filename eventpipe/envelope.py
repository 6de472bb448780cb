import io
import json

from eventpipe.consts import DataCategory
from eventpipe.session import Session
from eventpipe.utils import format_timestamp, json_dumps, now

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any
    from typing import Dict
    from typing import Iterator
    from typing import List
    from typing import Optional
    from typing import Union

    from eventpipe._types import Event


def parse_json(data: "Union[bytes, str]") -> "Any":
    if isinstance(data, bytes):
        data = data.decode("utf-8", "replace")
    return json.loads(data)


class TransportRequest:
    """A serialized envelope together with the rate limit category it counts against."""

    __slots__ = ("body", "category")

    def __init__(self, body: bytes, category: "Union[DataCategory, str]") -> None:
        self.body = body
        self.category = str(category)

    def __repr__(self) -> str:
        return "<TransportRequest category=%r size=%d>" % (
            self.category,
            len(self.body),
        )


class Envelope:
    """
    Newline separated container of one header line followed by item header
    and payload line pairs. The last payload is not followed by a newline.
    """

    def __init__(
        self,
        headers: "Optional[Dict[str, Any]]" = None,
        items: "Optional[List[Item]]" = None,
    ) -> None:
        if headers is not None:
            headers = dict(headers)
        self.headers = headers or {}
        if items is None:
            items = []
        else:
            items = list(items)
        self.items = items

    def add_event(
        self,
        event: "Event",
    ) -> None:
        self.add_item(
            Item(payload=PayloadRef(json=event), type=event.get("type") or "event")
        )

    def add_session(
        self,
        session: "Union[Session, Any]",
    ) -> None:
        if isinstance(session, Session):
            session = session.to_json()
        self.add_item(Item(payload=PayloadRef(json=session), type="session"))

    def add_item(
        self,
        item: "Item",
    ) -> None:
        self.items.append(item)

    def get_event(self) -> "Optional[Event]":
        for item in self.items:
            if item.type in ("event", "error", "message", "transaction"):
                return item.payload.json
        return None

    def __iter__(self) -> "Iterator[Item]":
        return iter(self.items)

    def serialize_into(
        self,
        f: "Any",
    ) -> None:
        f.write(json_dumps(self.headers))
        for item in self.items:
            f.write(b"\n")
            item.serialize_into(f)

    def serialize(self) -> bytes:
        out = io.BytesIO()
        self.serialize_into(out)
        return out.getvalue()

    @classmethod
    def deserialize_from(
        cls,
        f: "Any",
    ) -> "Envelope":
        headers = parse_json(f.readline())
        items = []
        while 1:
            item = Item.deserialize_from(f)
            if item is None:
                break
            items.append(item)
        return cls(headers=headers, items=items)

    @classmethod
    def deserialize(
        cls,
        bytes: bytes,
    ) -> "Envelope":
        return cls.deserialize_from(io.BytesIO(bytes))

    def __repr__(self) -> str:
        return "<Envelope headers=%r items=%r>" % (self.headers, self.items)


class PayloadRef:
    def __init__(
        self,
        bytes: "Optional[bytes]" = None,
        json: "Optional[Any]" = None,
    ) -> None:
        self.json = json
        self.bytes = bytes

    def get_bytes(self) -> bytes:
        if self.bytes is None and self.json is not None:
            self.bytes = json_dumps(self.json)
        return self.bytes or b""

    def __repr__(self) -> str:
        return "<Payload json=%r>" % (self.json is not None,)


class Item:
    def __init__(
        self,
        payload: "Union[bytes, str, PayloadRef]",
        headers: "Optional[Dict[str, Any]]" = None,
        type: "Optional[str]" = None,
    ) -> None:
        headers = dict(headers) if headers is not None else {}
        if isinstance(payload, bytes):
            payload = PayloadRef(bytes=payload)
        elif isinstance(payload, str):
            payload = PayloadRef(bytes=payload.encode("utf-8"))

        if type is not None:
            headers["type"] = type

        self.headers = headers
        self.payload = payload

    def __repr__(self) -> str:
        return "<Item headers=%r payload=%r>" % (self.headers, self.payload)

    @property
    def type(self) -> "Optional[str]":
        return self.headers.get("type")

    def get_bytes(self) -> bytes:
        return self.payload.get_bytes()

    def serialize_into(
        self,
        f: "Any",
    ) -> None:
        f.write(json_dumps(self.headers))
        f.write(b"\n")
        f.write(self.get_bytes())

    @classmethod
    def deserialize_from(
        cls,
        f: "Any",
    ) -> "Optional[Item]":
        line = f.readline().rstrip()
        if not line:
            return None
        headers = parse_json(line)
        payload = f.readline().rstrip(b"\n")
        if payload.startswith(b"{"):
            return cls(headers=headers, payload=PayloadRef(json=parse_json(payload)))
        return cls(headers=headers, payload=payload)


def event_to_transport_request(event: "Event") -> TransportRequest:
    if event.get("type") == "transaction":
        category = DataCategory.TRANSACTION
    else:
        category = DataCategory.ERROR

    envelope = Envelope(
        headers={
            "event_id": event.get("event_id"),
            "sent_at": format_timestamp(now()),
        }
    )
    envelope.add_event(event)
    return TransportRequest(envelope.serialize(), category)


def session_to_transport_request(session: "Session") -> TransportRequest:
    envelope = Envelope(headers={"sent_at": format_timestamp(now())})
    envelope.add_session(session)
    return TransportRequest(envelope.serialize(), DataCategory.SESSION)
