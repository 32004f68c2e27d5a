"""RPC surface of the bucket service: request validation and response mapping."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence

from .models import OperationStatus, RequestContext, Toy, ToyShort


class StatusCode(Enum):
    """RPC status codes reported to callers."""

    OK = "OK"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL = "INTERNAL"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    UNIMPLEMENTED = "UNIMPLEMENTED"


class RpcError(Exception):
    """A failed call; ``response`` holds the partial answer, if one was built."""

    def __init__(
        self, code: StatusCode, message: str, response: Optional[Any] = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.response = response


@dataclass(frozen=True)
class ToyBucket:
    """A toy id with the quantity requested."""

    toy_id: int = 0
    quantity: int = 0


@dataclass(frozen=True)
class AddToBucketRequest:
    toys: List[ToyBucket] = field(default_factory=list)


@dataclass(frozen=True)
class DelFromBucketRequest:
    toy_id: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class OperationResponse:
    """Outcome of a bucket operation."""

    status: OperationStatus
    msg: str


@dataclass(frozen=True)
class ToyView:
    """A toy as presented to callers."""

    toy_id: int
    name: str
    value: int
    image_url: str
    quantity: int


@dataclass(frozen=True)
class GetBucketResponse:
    toys: List[ToyView] = field(default_factory=list)
    quantity: int = 0


def _to_short(toys: Sequence[ToyBucket]) -> List[ToyShort]:
    return [ToyShort(id=toy.toy_id, qty=toy.quantity) for toy in toys]


def _to_view(toys: Sequence[Toy]) -> List[ToyView]:
    return [
        ToyView(
            toy_id=toy.id,
            name=toy.title,
            value=toy.value,
            image_url=toy.image_url,
            quantity=toy.quantity,
        )
        for toy in toys
    ]


def _checked(response: OperationResponse) -> OperationResponse:
    if response.status is not OperationStatus.STATUS_OK:
        raise RpcError(StatusCode.INTERNAL, "internal error!", response)
    return response


class BucketServer:
    """Validates requests and hands them to the bucket service."""

    def __init__(self, bucket: Any) -> None:
        self.bucket = bucket

    def add_to_bucket(
        self, ctx: RequestContext, request: AddToBucketRequest
    ) -> OperationResponse:
        for toy in request.toys:
            if toy.toy_id == 0:
                raise RpcError(StatusCode.INVALID_ARGUMENT, "missing toy ids")
            if toy.quantity == 0:
                raise RpcError(StatusCode.INVALID_ARGUMENT, "missing toy qty")
        status, msg = self.bucket.add_to_bucket(ctx, _to_short(request.toys))
        return _checked(OperationResponse(status, msg))

    def del_from_bucket(
        self, ctx: RequestContext, request: DelFromBucketRequest
    ) -> OperationResponse:
        if not request.toy_id:
            raise RpcError(StatusCode.INVALID_ARGUMENT, "missing toys ids")
        status, msg = self.bucket.del_from_bucket(ctx, list(request.toy_id))
        return _checked(OperationResponse(status, msg))

    def get_bucket(self, ctx: RequestContext) -> GetBucketResponse:
        toys, qty = self.bucket.get_bucket(ctx)
        return GetBucketResponse(toys=_to_view(toys), quantity=qty)

    def create_bucket(self, ctx: RequestContext) -> OperationResponse:
        status, msg = self.bucket.create_bucket(ctx)
        return _checked(OperationResponse(status, msg))