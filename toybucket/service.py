"""Bucket use cases: authorisation, subscription checks and catalogue enrichment."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, List, Sequence, Tuple

from .auth import AuthError
from .jsonlog import Logger
from .models import (
    USER_ID_KEY,
    OperationStatus,
    RequestContext,
    SubStatus,
    Toy,
    ToyShort,
)

Result = Tuple[OperationStatus, str]


def user_from_context(ctx: RequestContext) -> int:
    """Return the authenticated user id carried by ``ctx``."""
    user_id = ctx.value(USER_ID_KEY)
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        raise AuthError(
            AuthError.UNAUTHENTICATED, "user id is missing or invalid in context"
        )
    return user_id


class Buckets:
    """Bucket operations for the authenticated, subscribed user."""

    def __init__(
        self,
        log: Logger,
        provider: Any,
        token_ttl: timedelta,
        subs_client: Any,
        toy_client: Any,
    ) -> None:
        self.log = log
        self.provider = provider
        self.token_ttl = token_ttl
        self.subs_client = subs_client
        self.toy_client = toy_client

    def _subscribed(self, ctx: RequestContext, user_id: int) -> bool:
        response = self.subs_client.check_subscription(ctx, user_id)
        return response.sub_status is SubStatus.STATUS_SUBSCRIBED

    def add_to_bucket(self, ctx: RequestContext, toys: Sequence[ToyShort]) -> Result:
        try:
            user_id = user_from_context(ctx)
        except AuthError:
            return OperationStatus.STATUS_UNAUTHORIZED, "invalid user!"
        if not self._subscribed(ctx, user_id):
            return OperationStatus.STATUS_UNAUTHORIZED, "user is not subscribed"
        return self.provider.add_to_bucket(toys, user_id)

    def del_from_bucket(self, ctx: RequestContext, toy_ids: Sequence[int]) -> Result:
        try:
            user_id = user_from_context(ctx)
        except AuthError:
            return OperationStatus.STATUS_UNAUTHORIZED, "invalid user!"
        if not self._subscribed(ctx, user_id):
            return OperationStatus.STATUS_UNAUTHORIZED, "user is not subscribed"
        return self.provider.del_from_bucket(toy_ids, user_id)

    def get_bucket(self, ctx: RequestContext) -> Tuple[List[Toy], int]:
        """Return the bucket's toys with catalogue details, and the total quantity."""
        try:
            user_id = user_from_context(ctx)
        except AuthError:
            return [], 0
        if not self._subscribed(ctx, user_id):
            return [], 0

        toys, qty = self.provider.get_bucket(user_id)
        details = self.toy_client.get_toys_by_ids(ctx, [toy.id for toy in toys])
        if not details.toy:
            return [], 0

        for toy, info in zip(toys, details.toy):
            toy.title = info.title
            toy.image_url = info.image_url
            toy.value = info.value
        return toys, qty

    def create_bucket(self, ctx: RequestContext) -> Result:
        try:
            user_id = user_from_context(ctx)
        except AuthError:
            return OperationStatus.STATUS_INTERNAL_ERROR, "cannot get user from token"
        if not self._subscribed(ctx, user_id):
            return OperationStatus.STATUS_INTERNAL_ERROR, "user is not subscribed!"
        return self.provider.create_bucket(user_id)