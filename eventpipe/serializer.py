import math
from collections.abc import Mapping, Sequence, Set
from datetime import datetime

from eventpipe.utils import format_timestamp, safe_repr

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types import TracebackType

    from typing import Any
    from typing import ContextManager
    from typing import Dict
    from typing import List
    from typing import Optional
    from typing import Type
    from typing import Union


# Bytes are technically not strings in Python 3, but we can serialize them
serializable_str_types = (str, bytes, bytearray, memoryview)

CYCLE_MARKER = "<cyclic>"
OBJECT_MARKER = "[Object]"
ARRAY_MARKER = "[Array]"


class Memo:
    __slots__ = ("_ids", "_objs")

    def __init__(self) -> None:
        self._ids: "Dict[int, Any]" = {}
        self._objs: "List[Any]" = []

    def memoize(self, obj: "Any") -> "ContextManager[bool]":
        self._objs.append(obj)
        return self

    def __enter__(self) -> bool:
        obj = self._objs[-1]
        if id(obj) in self._ids:
            return True
        else:
            self._ids[id(obj)] = obj
            return False

    def __exit__(
        self,
        ty: "Optional[Type[BaseException]]",
        value: "Optional[BaseException]",
        tb: "Optional[TracebackType]",
    ) -> None:
        self._ids.pop(id(self._objs.pop()), None)


def _is_sequence(obj: "Any") -> bool:
    return not isinstance(obj, serializable_str_types) and isinstance(
        obj, (Sequence, Set)
    )


def normalize(value: "Any", depth: "Union[int, float]" = math.inf) -> "Any":
    """
    Turns an arbitrary value into a JSON-friendly structure.

    Mappings and sequences are walked down to `depth` levels. Containers found
    below that level are replaced by `"[Object]"` or `"[Array]"`, references
    back into the current path by `"<cyclic>"`. Anything that is not a JSON
    primitive is rendered through `repr()`.
    """
    memo = Memo()

    def _normalize_node(obj: "Any", remaining_depth: "Union[int, float]") -> "Any":
        with memo.memoize(obj) as seen:
            if seen:
                return CYCLE_MARKER
            return _normalize_node_impl(obj, remaining_depth)

    def _normalize_node_impl(
        obj: "Any", remaining_depth: "Union[int, float]"
    ) -> "Any":
        if obj is None or isinstance(obj, (bool, int)):
            return obj

        if isinstance(obj, float):
            if math.isinf(obj) or math.isnan(obj):
                return safe_repr(obj)
            return obj

        if isinstance(obj, str):
            return obj

        if isinstance(obj, (bytes, bytearray)):
            return bytes(obj).decode("utf-8", "replace")

        if isinstance(obj, datetime):
            return format_timestamp(obj)

        if isinstance(obj, Mapping):
            if remaining_depth <= 0:
                return OBJECT_MARKER
            # Copy first so a mutation during the walk does not break iteration
            items = list(obj.items())
            return {
                str(k): _normalize_node(v, remaining_depth - 1) for k, v in items
            }

        if _is_sequence(obj):
            if remaining_depth <= 0:
                return ARRAY_MARKER
            return [_normalize_node(v, remaining_depth - 1) for v in list(obj)]

        return safe_repr(obj)

    return _normalize_node(value, depth)
