import asyncio
import json

import pytest
from botocore.exceptions import ReadTimeoutError

from app.models import ShareRecord
from app.settings import SHARE_METADATA_PREFIX
from app.utils.errors import NotFoundError, StorageError
from app.utils.share_store import S3ShareStore, is_valid_share_id, share_object_key
from tests.conftest import BUCKET, OPERATOR_CREDENTIALS
from tests.s3_stub import FakeS3

SHARE_ID = "0b8e4a57-6c1d-4f7e-8f3a-2d9c1b7e5a44"


def _record(share_id: str = SHARE_ID, created_at: int = 1_700_000_000_000) -> ShareRecord:
    return ShareRecord(id=share_id, bucket=BUCKET, memo="for Bob", created_at=created_at, expires_at=-1)


@pytest.fixture()
def backend() -> FakeS3:
    return FakeS3(BUCKET)


@pytest.fixture()
def store(backend) -> S3ShareStore:
    return S3ShareStore(OPERATOR_CREDENTIALS, backend.client_factory)


def test_record_is_stored_as_camel_case_json_under_reserved_prefix(store, backend):
    asyncio.run(store.put(BUCKET, _record()))

    key = f"{SHARE_METADATA_PREFIX}{SHARE_ID}.json"
    assert backend.keys(BUCKET) == [key]
    stored = json.loads(backend.buckets[BUCKET][key][0])
    assert stored == {
        "id": SHARE_ID,
        "bucket": BUCKET,
        "memo": "for Bob",
        "createdAt": 1_700_000_000_000,
        "expiresAt": -1,
        "permissions": ["LIST", "READ"],
    }


def test_get_returns_what_was_put(store):
    asyncio.run(store.put(BUCKET, _record()))
    assert asyncio.run(store.get(BUCKET, SHARE_ID)) == _record()


def test_get_missing_record_is_not_found(store):
    with pytest.raises(NotFoundError):
        asyncio.run(store.get(BUCKET, SHARE_ID))


def test_get_with_non_uuid_id_never_touches_storage(store, backend):
    with pytest.raises(NotFoundError):
        asyncio.run(store.get(BUCKET, "../../etc/passwd"))
    assert backend.calls == []


def test_delete_is_idempotent(store):
    asyncio.run(store.put(BUCKET, _record()))
    asyncio.run(store.delete(BUCKET, SHARE_ID))
    asyncio.run(store.delete(BUCKET, SHARE_ID))
    asyncio.run(store.delete(BUCKET, "not-a-uuid"))
    with pytest.raises(NotFoundError):
        asyncio.run(store.get(BUCKET, SHARE_ID))


def test_list_skips_corrupt_records(store, backend):
    other_id = "9d5f0e0c-3b58-4a52-a1a4-6f0b4a3c2e11"
    asyncio.run(store.put(BUCKET, _record()))
    asyncio.run(store.put(BUCKET, _record(other_id)))
    backend.put(BUCKET, f"{SHARE_METADATA_PREFIX}{other_id}.json", b"{not json")
    backend.put(BUCKET, f"{SHARE_METADATA_PREFIX}empty.json", b"")

    records = asyncio.run(store.list(BUCKET))
    assert [r.id for r in records] == [SHARE_ID]


def test_list_skips_records_that_time_out(store, backend):
    other_id = "9d5f0e0c-3b58-4a52-a1a4-6f0b4a3c2e11"
    asyncio.run(store.put(BUCKET, _record()))
    asyncio.run(store.put(BUCKET, _record(other_id)))
    slow_key = f"{SHARE_METADATA_PREFIX}{other_id}.json"

    original = backend.client_factory

    def flaky(credentials):
        client = original(credentials)
        get_object = client.get_object

        async def _get(**kwargs):
            if kwargs["Key"] == slow_key:
                raise ReadTimeoutError(endpoint_url="http://localhost:3900")
            return await get_object(**kwargs)

        client.get_object = _get
        return client

    records = asyncio.run(S3ShareStore(OPERATOR_CREDENTIALS, flaky).list(BUCKET))
    assert [r.id for r in records] == [SHARE_ID]


def test_list_follows_pagination(store, backend):
    ids = [f"00000000-0000-4000-8000-{i:012d}" for i in range(5)]
    for i, share_id in enumerate(ids):
        asyncio.run(store.put(BUCKET, _record(share_id, created_at=i)))

    original = backend.client_factory

    def small_pages(credentials):
        client = original(credentials)
        list_page = client.list_objects_v2

        async def _list(**kwargs):
            kwargs["MaxKeys"] = 2
            return await list_page(**kwargs)

        client.list_objects_v2 = _list
        return client

    paged = S3ShareStore(OPERATOR_CREDENTIALS, small_pages)
    records = asyncio.run(paged.list(BUCKET))
    assert sorted(r.id for r in records) == ids
    assert backend.call_names().count("ListObjectsV2") == 3


def test_update_applies_mutator_and_persists(store):
    asyncio.run(store.put(BUCKET, _record()))
    updated = asyncio.run(
        store.update(BUCKET, SHARE_ID, lambda r: r.model_copy(update={"expires_at": 1_800_000_000_000}))
    )
    assert updated.expires_at == 1_800_000_000_000
    assert asyncio.run(store.get(BUCKET, SHARE_ID)).expires_at == 1_800_000_000_000


def test_update_of_missing_record_is_not_found(store):
    with pytest.raises(NotFoundError):
        asyncio.run(store.update(BUCKET, SHARE_ID, lambda r: r))


def test_storage_failures_surface_as_storage_error(store, backend):
    backend.denied_keys.add(OPERATOR_CREDENTIALS.access_key_id)
    with pytest.raises(StorageError) as excinfo:
        asyncio.run(store.put(BUCKET, _record()))
    assert excinfo.value.code == "AccessDenied"


def test_missing_bucket_is_a_storage_error(store):
    with pytest.raises(StorageError):
        asyncio.run(store.list("nope"))


def test_share_id_validation():
    assert is_valid_share_id(SHARE_ID)
    assert not is_valid_share_id(SHARE_ID.upper().replace("-", ""))
    assert share_object_key(SHARE_ID).endswith(f"{SHARE_ID}.json")
