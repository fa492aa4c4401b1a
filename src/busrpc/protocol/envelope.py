"""Request and reply envelopes.

An envelope wraps the domain payload together with the routing and
correlation metadata. Both envelope classes are immutable; a reply can only
be built from the request it answers (:meth:`RequestEnvelope.ok` and
:meth:`RequestEnvelope.failure`), which is how the correlation identifier is
guaranteed to propagate from request to reply.
"""

from __future__ import annotations

import math
import numbers
import time as timemodule
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from . import fields

Number = Union[int, float]


def number(value: Any) -> Number:
    """Return *value* as a plain int or float, or raise TypeError/ValueError.

    Booleans are rejected even though Python considers them integers, and so
    are NaN and the infinities, which JSON cannot carry.
    """

    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise TypeError(f"expected a number, got {type(value).__name__}: {value!r}")

    if isinstance(value, numbers.Integral):
        return int(value)

    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"non-finite number: {value!r}")
    return value


def numbers_of(values: Any) -> Tuple[Number, ...]:
    """Validate an ordered sequence of numbers, preserving order and values."""

    if isinstance(values, (str, bytes, dict)) or values is None:
        raise TypeError(f"payload must be a sequence of numbers, got {type(values).__name__}")

    return tuple(number(value) for value in values)


@dataclass(frozen=True)
class RequestEnvelope:
    """A request on its way from a client to a worker."""

    id: str
    operation: str
    payload: Tuple[Number, ...]
    reply_to: Optional[str] = None
    time: float = field(default_factory=timemodule.time)

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or self.id == "":
            raise ValueError("a request must carry a correlation identifier")
        if not isinstance(self.operation, str) or self.operation == "":
            raise ValueError("a request must name an operation")
        if self.reply_to is not None and not isinstance(self.reply_to, str):
            raise ValueError(f"invalid reply topic: {self.reply_to!r}")

        object.__setattr__(self, "payload", numbers_of(self.payload))

    def ok(self, result: Any) -> "ReplyEnvelope":
        """Build the successful reply to this request."""
        return ReplyEnvelope(id=self.id, status=fields.OK, result=number(result))

    def failure(self, detail: Dict[str, Any]) -> "ReplyEnvelope":
        """Build the error reply to this request from an error *detail*."""
        return ReplyEnvelope(id=self.id, status=fields.ERROR, error=dict(detail))

    def to_dict(self) -> Dict[str, Any]:
        return {
            fields.VERSION_KEY: fields.VERSION,
            fields.ID: self.id,
            fields.OPERATION: self.operation,
            fields.REPLY_TO: self.reply_to,
            fields.PAYLOAD: list(self.payload),
            fields.TIME: self.time,
        }


@dataclass(frozen=True)
class ReplyEnvelope:
    """A reply on its way from a worker back to the client."""

    id: str
    status: str
    result: Optional[Number] = None
    error: Optional[Dict[str, Any]] = None
    time: float = field(default_factory=timemodule.time)

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or self.id == "":
            raise ValueError("a reply must carry a correlation identifier")
        if self.status not in fields.STATUSES:
            raise ValueError(f"invalid reply status: {self.status!r}")

        if self.status == fields.OK:
            object.__setattr__(self, "result", number(self.result))
        elif not isinstance(self.error, dict):
            raise ValueError("an error reply must carry an error detail")

    @property
    def is_ok(self) -> bool:
        return self.status == fields.OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            fields.VERSION_KEY: fields.VERSION,
            fields.ID: self.id,
            fields.STATUS: self.status,
            fields.RESULT: self.result,
            fields.ERROR_DETAIL: self.error,
            fields.TIME: self.time,
        }
