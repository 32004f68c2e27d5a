import pytest

from toybucket.models import OperationStatus, RequestContext, Toy, ToyShort
from toybucket.server import (
    AddToBucketRequest,
    BucketServer,
    DelFromBucketRequest,
    GetBucketResponse,
    OperationResponse,
    RpcError,
    StatusCode,
    ToyBucket,
    ToyView,
)

OK = (OperationStatus.STATUS_OK, "done")
FAILED = (OperationStatus.STATUS_INTERNAL_ERROR, "bucket not found")


class FakeBucket:
    def __init__(self, result=OK, toys=None, qty=0):
        self.result = result
        self.toys = toys or []
        self.qty = qty
        self.calls = []

    def add_to_bucket(self, ctx, toys):
        self.calls.append(("add", ctx, list(toys)))
        return self.result

    def del_from_bucket(self, ctx, toy_ids):
        self.calls.append(("del", ctx, list(toy_ids)))
        return self.result

    def get_bucket(self, ctx):
        self.calls.append(("get", ctx, None))
        return self.toys, self.qty

    def create_bucket(self, ctx):
        self.calls.append(("create", ctx, None))
        return self.result


CTX = RequestContext(metadata={})


def test_add_maps_toys_and_returns_response():
    bucket = FakeBucket()
    request = AddToBucketRequest([ToyBucket(1, 2), ToyBucket(3, 4)])
    response = BucketServer(bucket).add_to_bucket(CTX, request)
    assert response == OperationResponse(OperationStatus.STATUS_OK, "done")
    assert bucket.calls == [("add", CTX, [ToyShort(1, 2), ToyShort(3, 4)])]


@pytest.mark.parametrize(
    "toy, message",
    [(ToyBucket(0, 2), "missing toy ids"), (ToyBucket(5, 0), "missing toy qty")],
)
def test_add_rejects_incomplete_toys(toy, message):
    bucket = FakeBucket()
    with pytest.raises(RpcError) as info:
        BucketServer(bucket).add_to_bucket(CTX, AddToBucketRequest([ToyBucket(1, 1), toy]))
    assert info.value.code is StatusCode.INVALID_ARGUMENT
    assert info.value.message == message
    assert bucket.calls == []


def test_add_with_no_toys_reaches_service():
    bucket = FakeBucket()
    BucketServer(bucket).add_to_bucket(CTX, AddToBucketRequest())
    assert bucket.calls == [("add", CTX, [])]


def test_add_failure_carries_response():
    bucket = FakeBucket(result=FAILED)
    with pytest.raises(RpcError) as info:
        BucketServer(bucket).add_to_bucket(CTX, AddToBucketRequest([ToyBucket(1, 1)]))
    assert info.value.code is StatusCode.INTERNAL
    assert str(info.value) == "internal error!"
    assert info.value.response == OperationResponse(*FAILED)


def test_del_requires_ids():
    with pytest.raises(RpcError) as info:
        BucketServer(FakeBucket()).del_from_bucket(CTX, DelFromBucketRequest())
    assert info.value.code is StatusCode.INVALID_ARGUMENT
    assert info.value.message == "missing toys ids"


def test_del_passes_ids():
    bucket = FakeBucket()
    response = BucketServer(bucket).del_from_bucket(CTX, DelFromBucketRequest([4, 9]))
    assert response.status is OperationStatus.STATUS_OK
    assert bucket.calls == [("del", CTX, [4, 9])]


def test_del_failure_raises_internal():
    bucket = FakeBucket(result=FAILED)
    with pytest.raises(RpcError) as info:
        BucketServer(bucket).del_from_bucket(CTX, DelFromBucketRequest([4]))
    assert info.value.code is StatusCode.INTERNAL
    assert info.value.response.msg == "bucket not found"


def test_get_bucket_maps_toys():
    toys = [Toy(id=7, title="kite", value=30, image_url="img/kite.png", quantity=2)]
    response = BucketServer(FakeBucket(toys=toys, qty=2)).get_bucket(CTX)
    assert response == GetBucketResponse(
        toys=[ToyView(toy_id=7, name="kite", value=30, image_url="img/kite.png", quantity=2)],
        quantity=2,
    )


def test_get_bucket_empty():
    assert BucketServer(FakeBucket()).get_bucket(CTX) == GetBucketResponse([], 0)


def test_create_bucket_success_and_failure():
    assert BucketServer(FakeBucket()).create_bucket(CTX) == OperationResponse(*OK)
    with pytest.raises(RpcError) as info:
        BucketServer(FakeBucket(result=FAILED)).create_bucket(CTX)
    assert info.value.response == OperationResponse(*FAILED)