import io
from datetime import timedelta

import pytest

from toybucket.auth import AuthError
from toybucket.clients import CheckSubsResponse, GetToysByIdsResponse, ToyInfo
from toybucket.jsonlog import Logger
from toybucket.models import (
    USER_ID_KEY,
    OperationStatus,
    RequestContext,
    SubStatus,
    Toy,
    ToyShort,
)
from toybucket.service import Buckets, user_from_context

OK = (OperationStatus.STATUS_OK, "done")


class FakeProvider:
    def __init__(self, toys=None):
        self.calls = []
        self.toys = toys or []

    def add_to_bucket(self, toys, user_id):
        self.calls.append(("add", list(toys), user_id))
        return OK

    def del_from_bucket(self, toy_ids, user_id):
        self.calls.append(("del", list(toy_ids), user_id))
        return OK

    def create_bucket(self, user_id):
        self.calls.append(("create", user_id))
        return OK

    def get_bucket(self, user_id):
        self.calls.append(("get", user_id))
        return self.toys, sum(t.quantity for t in self.toys)


class FakeSubs:
    def __init__(self, status):
        self.status = status

    def check_subscription(self, ctx, user_id):
        return CheckSubsResponse(self.status)


class FakeToys:
    def __init__(self, response):
        self.response = response
        self.requested = None

    def get_toys_by_ids(self, ctx, ids):
        self.requested = ids
        return self.response


def _service(provider, status=SubStatus.STATUS_SUBSCRIBED, toys_response=None):
    return Buckets(
        Logger(io.StringIO()),
        provider,
        timedelta(hours=1),
        FakeSubs(status),
        FakeToys(toys_response or GetToysByIdsResponse()),
    )


USER_CTX = RequestContext(metadata={}).with_value(USER_ID_KEY, 11)


def test_user_from_context():
    assert user_from_context(USER_CTX) == 11


@pytest.mark.parametrize("value", [None, "11", True])
def test_user_from_context_rejects_bad_values(value):
    with pytest.raises(AuthError) as info:
        user_from_context(RequestContext().with_value(USER_ID_KEY, value))
    assert info.value.code == AuthError.UNAUTHENTICATED


def test_add_to_bucket_delegates():
    provider = FakeProvider()
    items = [ToyShort(1, 2)]
    assert _service(provider).add_to_bucket(USER_CTX, items) == OK
    assert provider.calls == [("add", items, 11)]


def test_add_to_bucket_without_user():
    provider = FakeProvider()
    result = _service(provider).add_to_bucket(RequestContext(), [ToyShort(1, 1)])
    assert result == (OperationStatus.STATUS_UNAUTHORIZED, "invalid user!")
    assert provider.calls == []


def test_add_to_bucket_not_subscribed():
    provider = FakeProvider()
    service = _service(provider, SubStatus.STATUS_NOT_SUBSCRIBED)
    result = service.add_to_bucket(USER_CTX, [ToyShort(1, 1)])
    assert result == (OperationStatus.STATUS_UNAUTHORIZED, "user is not subscribed")
    assert provider.calls == []


def test_del_from_bucket_delegates_and_guards():
    provider = FakeProvider()
    assert _service(provider).del_from_bucket(USER_CTX, [4, 5]) == OK
    assert provider.calls == [("del", [4, 5], 11)]
    refused = _service(provider, SubStatus.STATUS_INTERNAL_ERROR).del_from_bucket(USER_CTX, [4])
    assert refused == (OperationStatus.STATUS_UNAUTHORIZED, "user is not subscribed")


def test_create_bucket_paths():
    provider = FakeProvider()
    assert _service(provider).create_bucket(USER_CTX) == OK
    assert _service(provider).create_bucket(RequestContext()) == (
        OperationStatus.STATUS_INTERNAL_ERROR,
        "cannot get user from token",
    )
    assert _service(provider, SubStatus.STATUS_NOT_SUBSCRIBED).create_bucket(USER_CTX) == (
        OperationStatus.STATUS_INTERNAL_ERROR,
        "user is not subscribed!",
    )
    assert provider.calls == [("create", 11)]


def test_get_bucket_enriches_toys():
    provider = FakeProvider([Toy(id=1, quantity=2), Toy(id=2, quantity=3)])
    details = GetToysByIdsResponse(
        toy=[
            ToyInfo(id=1, title="Ball", value=10, image_url="ball.png"),
            ToyInfo(id=2, title="Kite", value=20, image_url="kite.png"),
        ]
    )
    service = _service(provider, toys_response=details)
    toys, qty = service.get_bucket(USER_CTX)
    assert qty == 5
    assert [(t.id, t.title, t.value, t.image_url, t.quantity) for t in toys] == [
        (1, "Ball", 10, "ball.png", 2),
        (2, "Kite", 20, "kite.png", 3),
    ]
    assert service.toy_client.requested == [1, 2]


def test_get_bucket_empty_catalogue_answer():
    provider = FakeProvider([Toy(id=1, quantity=2)])
    assert _service(provider).get_bucket(USER_CTX) == ([], 0)


def test_get_bucket_guards():
    provider = FakeProvider([Toy(id=1, quantity=2)])
    assert _service(provider).get_bucket(RequestContext()) == ([], 0)
    assert _service(provider, SubStatus.STATUS_NOT_SUBSCRIBED).get_bucket(USER_CTX) == ([], 0)
    assert provider.calls == []