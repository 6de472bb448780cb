import uuid

from eventpipe.utils import format_timestamp, now

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Any
    from typing import Dict
    from typing import Optional
    from typing import Union

    from eventpipe._types import SessionStatus


def _make_uuid(
    val: "Union[str, uuid.UUID]",
) -> "uuid.UUID":
    if isinstance(val, uuid.UUID):
        return val
    return uuid.UUID(val)


class Session:
    """
    Health record of one application run (or one request) that the client
    keeps updating while events are captured.

    A session starts as `ok`; `close()` turns an `ok` session into `exited`.
    The client marks it `crashed` when an event carries an unhandled
    exception mechanism and bumps `errors` for every error event.
    """

    def __init__(
        self,
        sid: "Optional[Union[str, uuid.UUID]]" = None,
        did: "Optional[str]" = None,
        timestamp: "Optional[datetime]" = None,
        started: "Optional[datetime]" = None,
        duration: "Optional[float]" = None,
        status: "Optional[SessionStatus]" = None,
        release: "Optional[str]" = None,
        environment: "Optional[str]" = None,
        user_agent: "Optional[str]" = None,
        ip_address: "Optional[str]" = None,
        errors: "Optional[int]" = None,
        user: "Optional[Any]" = None,
    ) -> None:
        if sid is None:
            sid = uuid.uuid4()
        if started is None:
            started = now()
        if status is None:
            status = "ok"
        self.status = status  # type: SessionStatus
        self.init = True
        self.did = None  # type: Optional[str]
        self.started = started
        self.release = None  # type: Optional[str]
        self.environment = None  # type: Optional[str]
        self.duration = 0.0  # type: float
        self.user_agent = None  # type: Optional[str]
        self.ip_address = None  # type: Optional[str]
        self.errors = 0

        self.update(
            sid=sid,
            did=did,
            timestamp=timestamp,
            duration=duration,
            release=release,
            environment=environment,
            user_agent=user_agent,
            ip_address=ip_address,
            errors=errors,
            user=user,
        )

    def __repr__(self) -> str:
        return "<Session sid=%s status=%s errors=%s>" % (
            self.sid,
            self.status,
            self.errors,
        )

    def update(
        self,
        sid: "Optional[Union[str, uuid.UUID]]" = None,
        did: "Optional[str]" = None,
        timestamp: "Optional[datetime]" = None,
        started: "Optional[datetime]" = None,
        duration: "Optional[float]" = None,
        status: "Optional[SessionStatus]" = None,
        release: "Optional[str]" = None,
        environment: "Optional[str]" = None,
        user_agent: "Optional[str]" = None,
        ip_address: "Optional[str]" = None,
        errors: "Optional[int]" = None,
        user: "Optional[Any]" = None,
        init: "Optional[bool]" = None,
    ) -> None:
        # If a user is supplied we pull some data from it
        if user:
            if ip_address is None:
                ip_address = user.get("ip_address")
            if did is None:
                did = user.get("id") or user.get("email") or user.get("username")

        if sid is not None:
            self.sid = _make_uuid(sid)
        if did is not None:
            self.did = str(did)
        if init is not None:
            self.init = init
        if timestamp is None:
            timestamp = now()
        self.timestamp = timestamp
        if started is not None:
            self.started = started
        if duration is not None:
            self.duration = duration
        else:
            self.duration = max(
                (self.timestamp - self.started).total_seconds(), 0.0
            )
        if release is not None:
            self.release = release
        if environment is not None:
            self.environment = environment
        if ip_address is not None:
            self.ip_address = ip_address
        if user_agent is not None:
            self.user_agent = user_agent
        if errors is not None:
            self.errors = errors

        if status is not None:
            self.status = status

    def close(
        self,
        status: "Optional[SessionStatus]" = None,
    ) -> None:
        if status is None and self.status == "ok":
            status = "exited"
        if status is not None:
            self.update(status=status)
        else:
            self.update()

    def to_json(self) -> "Dict[str, Any]":
        rv = {
            "sid": str(self.sid),
            "init": self.init,
            "started": format_timestamp(self.started),
            "timestamp": format_timestamp(self.timestamp),
            "status": self.status,
            "errors": self.errors,
            "duration": self.duration,
        }  # type: Dict[str, Any]
        if self.did is not None:
            rv["did"] = self.did

        attrs = {}
        if self.release is not None:
            attrs["release"] = self.release
        if self.environment is not None:
            attrs["environment"] = self.environment
        if self.ip_address is not None:
            attrs["ip_address"] = self.ip_address
        if self.user_agent is not None:
            attrs["user_agent"] = self.user_agent
        rv["attrs"] = attrs
        return rv
