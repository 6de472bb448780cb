"""
Bookkeeping of the categories the collector asked us to stop sending.

Rate limits are kept in a plain dict mapping a category (or the wildcard
``"all"``) to the aware UTC datetime until which it is disabled. The
functions here never mutate their input.
"""

from datetime import timedelta

import urllib3

from eventpipe.consts import ALL_CATEGORIES, DEFAULT_RETRY_AFTER
from eventpipe.utils import now as _now

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Iterable
    from typing import Mapping
    from typing import Optional
    from typing import Tuple

    from eventpipe._types import RateLimits


def _header(headers: "Optional[Mapping[str, str]]", name: str) -> "Optional[str]":
    # Header names are case-insensitive
    if not headers:
        return None
    value = headers.get(name)
    if value is not None:
        return value
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def _parse_delay(value: str) -> int:
    try:
        return int(value.strip())
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER


def parse_rate_limits_header(
    header: str, now: "datetime"
) -> "Iterable[Tuple[str, datetime]]":
    """
    Yields ``(category, retry_at)`` pairs for a ``X-Sentry-Rate-Limits`` value.

    The header is a comma separated list of
    ``<retry_after>:<categories>:<scope>:<reason_code>`` entries. Categories
    are ``;`` separated; an empty list disables all of them. Scope and reason
    are ignored.
    """
    for limit in header.strip().split(","):
        parameters = limit.split(":", 2)
        retry_at = now + timedelta(seconds=_parse_delay(parameters[0]))
        categories = parameters[1] if len(parameters) > 1 else ""
        if not categories:
            yield ALL_CATEGORIES, retry_at
        else:
            for category in categories.split(";"):
                yield category, retry_at


def parse_retry_after_header(header: str, now: "datetime") -> "datetime":
    try:
        delay = urllib3.util.Retry().parse_retry_after(header)
    except urllib3.exceptions.InvalidHeader:
        delay = DEFAULT_RETRY_AFTER
    return now + timedelta(seconds=delay)


def update_rate_limits(
    limits: "RateLimits",
    headers: "Optional[Mapping[str, str]]",
    now: "Optional[datetime]" = None,
) -> "RateLimits":
    """Returns a copy of `limits` updated from the response headers."""
    if now is None:
        now = _now()

    rv = dict(limits)

    rate_limits = _header(headers, "x-sentry-rate-limits")
    retry_after = _header(headers, "retry-after")

    if rate_limits:
        for category, retry_at in parse_rate_limits_header(rate_limits, now):
            rv[category] = retry_at
    elif retry_after:
        rv[ALL_CATEGORIES] = parse_retry_after_header(retry_after, now)

    return rv


def disabled_until(limits: "RateLimits", category: str) -> "Optional[datetime]":
    return limits.get(category) or limits.get(ALL_CATEGORIES)


def is_rate_limited(
    limits: "RateLimits", category: str, now: "Optional[datetime]" = None
) -> bool:
    until = disabled_until(limits, category)
    if until is None:
        return False
    if now is None:
        now = _now()
    return until > now
