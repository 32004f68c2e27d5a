"""Clients for the subscription and toy catalogue services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple, TypeVar

from .jsonlog import Logger
from .models import RequestContext, SubStatus

Metadata = Tuple[Tuple[str, str], ...]
T = TypeVar("T")

_RETRYABLE = (TimeoutError,)
_TOYS_METHOD = "toys.grpc.GetToysByIds"


@dataclass(frozen=True)
class CheckSubsResponse:
    """Answer of the subscription service."""

    sub_status: SubStatus


@dataclass(frozen=True)
class ToyInfo:
    """Catalogue details of one toy."""

    id: int
    title: str = ""
    value: int = 0
    image_url: str = ""


@dataclass(frozen=True)
class GetToysByIdsResponse:
    """Answer of the toy catalogue service."""

    toy: List[ToyInfo] = field(default_factory=list)
    msg: str = ""


def bearer_metadata(token: str) -> Metadata:
    """Outgoing metadata carrying ``token`` as a bearer credential."""
    return (("authorization", "Bearer " + token),)


def _authorization_values(metadata: Mapping[str, Sequence[str]]) -> List[str]:
    for key, values in metadata.items():
        if key.lower() == "authorization":
            return list(values)
    return []


def _with_retries(call: Callable[[], T], retries_count: int) -> T:
    attempts = max(1, retries_count)
    for attempt in range(1, attempts + 1):
        try:
            return call()
        except _RETRYABLE:
            if attempt == attempts:
                raise
    raise AssertionError("unreachable")


def _seconds(timeout: Optional[timedelta]) -> Optional[float]:
    if timeout is None or timeout <= timedelta(0):
        return None
    return timeout.total_seconds()


class SubscriptionClient:
    """Asks the subscription service whether the caller is subscribed.

    ``stub.check_subscription(metadata=..., timeout=...)`` performs the call
    and returns a :class:`CheckSubsResponse`.
    """

    def __init__(
        self,
        stub: Any,
        log: Logger,
        timeout: Optional[timedelta] = None,
        retries_count: int = 0,
    ) -> None:
        self._stub = stub
        self.log = log
        self.timeout = timeout
        self.retries_count = retries_count

    def check_subscription(self, ctx: RequestContext, user_id: int) -> CheckSubsResponse:
        self.log.print_info(
            "checking subscription", {"method": "grpc.CheckSubscription"}
        )
        failed = CheckSubsResponse(SubStatus.STATUS_INTERNAL_ERROR)

        if ctx.metadata is None:
            self.log.print_error("missing metadata")
            return failed
        headers = _authorization_values(ctx.metadata)
        if not headers:
            self.log.print_error("missing authorization token")
            return failed

        outgoing = (("authorization", headers[0]),)
        self.log.print_info("forwarding JWT token", {"token": headers[0]})
        try:
            return _with_retries(
                lambda: self._stub.check_subscription(
                    metadata=outgoing, timeout=_seconds(self.timeout)
                ),
                self.retries_count,
            )
        except Exception as exc:
            self.log.print_error(exc, {"method": "grpc.CheckSubscription"})
            return failed


class ToyClient:
    """Fetches toy details from the catalogue service.

    ``stub.get_toys_by_ids(ids, metadata=..., timeout=...)`` performs the call
    and returns a :class:`GetToysByIdsResponse`.
    """

    def __init__(
        self,
        stub: Any,
        log: Logger,
        timeout: Optional[timedelta] = None,
        retries_count: int = 0,
    ) -> None:
        self._stub = stub
        self.log = log
        self.timeout = timeout
        self.retries_count = retries_count

    def get_toys_by_ids(self, ctx: RequestContext, ids: Sequence[int]) -> GetToysByIdsResponse:
        props = {"method": _TOYS_METHOD, "service": "toys"}
        self.log.print_info("getting toy list from toy microservice", props)

        if ctx.metadata is None:
            self.log.print_error("missing metadata", props)
            return GetToysByIdsResponse(
                msg="missing metadata to connect to toys microservice"
            )
        headers = _authorization_values(ctx.metadata)
        if not headers:
            self.log.print_error("missing authorization token")
            return GetToysByIdsResponse(msg="missing token")

        outgoing = (("authorization", headers[0]),)
        self.log.print_info("forwarding JWT token", {"token": headers[0]})
        try:
            response = _with_retries(
                lambda: self._stub.get_toys_by_ids(
                    list(ids), metadata=outgoing, timeout=_seconds(self.timeout)
                ),
                self.retries_count,
            )
        except Exception:
            self.log.print_error(
                "cannot get response from toy service", {"method": _TOYS_METHOD}
            )
            return GetToysByIdsResponse(msg="cannot get response from toy service")

        if not response.toy:
            return GetToysByIdsResponse(msg="0 toys!")
        return response