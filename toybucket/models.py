"""Domain types shared across the bucket service."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

USER_ID_KEY = "user_id"
"""Context key under which the authenticated user id is stored."""


class OperationStatus(Enum):
    """Outcome of a bucket operation as reported to callers."""

    STATUS_OK = "STATUS_OK"
    STATUS_INTERNAL_ERROR = "STATUS_INTERNAL_ERROR"
    STATUS_UNAUTHORIZED = "STATUS_UNAUTHORIZED"


class SubStatus(Enum):
    """Subscription state reported by the subscription service."""

    STATUS_SUBSCRIBED = "STATUS_SUBSCRIBED"
    STATUS_NOT_SUBSCRIBED = "STATUS_NOT_SUBSCRIBED"
    STATUS_INTERNAL_ERROR = "STATUS_INTERNAL_ERROR"


@dataclass
class Toy:
    """A toy held in a user's bucket, with its catalogue details."""

    id: int
    title: str = ""
    value: int = 0
    image_url: str = ""
    quantity: int = 0


@dataclass(frozen=True)
class ToyShort:
    """A toy id with the quantity to add."""

    id: int
    qty: int


@dataclass(frozen=True)
class RequestContext:
    """Per-request state: incoming metadata and values set along the way.

    ``metadata`` is ``None`` when the request carried no metadata at all.
    """

    metadata: Optional[Mapping[str, Sequence[str]]] = None
    values: Mapping[Any, Any] = field(default_factory=dict)

    def with_value(self, key: Any, value: Any) -> "RequestContext":
        """Return a new context that also carries ``key`` set to ``value``."""
        return replace(self, values={**self.values, key: value})

    def value(self, key: Any) -> Any:
        """Return the value stored under ``key``, or ``None``."""
        return self.values.get(key)