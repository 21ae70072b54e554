"""Unit tests for RemoteCollectionClient."""

import typing

import pytest

from focuskit.errors import RemoteError
from focuskit.models import LocalId, RemoteId, Task, TaskUpdate, utcnow
from focuskit.sync import QUOTES, TASKS, InMemoryRemoteStore, RemoteCollectionClient


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_list_maps_rows_into_remote_records(remote: InMemoryRemoteStore) -> None:
    remote.insert("tasks", {"title": "A", "priority": "high", "user_id": "u1"})
    records = RemoteCollectionClient(remote, TASKS).list("u1")
    assert len(records) == 1
    assert isinstance(records[0].id, RemoteId)
    assert records[0].owner_id == "u1"
    assert records[0].priority == "high"


def test_list_respects_staleness_window(remote: InMemoryRemoteStore) -> None:
    """Within stale_after the cached listing is reused; force always fetches."""
    clock = _Clock()
    client = RemoteCollectionClient(remote, TASKS, stale_after=300, clock=clock)
    client.list("u1")
    remote.insert("tasks", {"title": "late", "user_id": "u1"})

    assert client.list("u1") == []
    assert len(client.list("u1", force=True)) == 1

    remote.insert("tasks", {"title": "later", "user_id": "u1"})
    clock.now = 301
    assert len(client.list("u1")) == 2


def test_list_skips_undecodable_rows(remote: InMemoryRemoteStore) -> None:
    remote.insert("tasks", {"title": "", "user_id": "u1"})
    remote.insert("tasks", {"title": "ok", "user_id": "u1"})
    records = RemoteCollectionClient(remote, TASKS).list("u1")
    assert [r.title for r in records] == ["ok"]


def test_quotes_include_public(remote: InMemoryRemoteStore) -> None:
    remote.insert("quotes", {"content": "public", "user_id": None, "is_custom": False})
    remote.insert("quotes", {"content": "other user", "user_id": "u2"})
    records = RemoteCollectionClient(remote, QUOTES).list("u1")
    assert [q.content for q in records] == ["public"]


def test_create_strips_local_id_and_caches(remote: InMemoryRemoteStore) -> None:
    """The insert payload has no id; the created record joins the cache."""
    client = RemoteCollectionClient(remote, TASKS)
    client.list("u1")
    created = client.create(Task(id=LocalId.new(), title="A"), "u1")

    row = remote.rows("tasks")[0]
    assert not str(row["id"]).startswith("local_")
    assert row["user_id"] == "u1"
    assert created.id == RemoteId(value=row["id"])
    assert client.cached("u1") == [created]


def test_update_and_delete(remote: InMemoryRemoteStore) -> None:
    client = RemoteCollectionClient(remote, TASKS)
    created = client.create(Task(id=LocalId.new(), title="A"), "u1")

    updated = client.update("u1", created.id, TaskUpdate(completed=True), utcnow())
    assert updated.completed is True
    assert remote.rows("tasks")[0]["updated_at"] is not None

    client.delete("u1", created.id)
    assert remote.rows("tasks") == []
    assert client.cached("u1") == []


def test_failures_raise_remote_error(remote: InMemoryRemoteStore) -> None:
    client = RemoteCollectionClient(remote, TASKS)
    remote.set_online(False)
    with pytest.raises(RemoteError):
        client.list("u1")
    with pytest.raises(RemoteError):
        client.create(Task(id=LocalId.new(), title="A"), "u1")


def test_invalidate_drops_cache(remote: InMemoryRemoteStore) -> None:
    client = RemoteCollectionClient(remote, TASKS)
    client.create(Task(id=LocalId.new(), title="A"), "u1")
    client.invalidate("u1")
    assert client.cached("u1") == []


def test_return_annotations_use_builtin_list() -> None:
    """The ``list`` method must not shadow the builtin in later annotations."""
    for method in (RemoteCollectionClient.list, RemoteCollectionClient.cached):
        hints = typing.get_type_hints(method)
        assert typing.get_origin(hints["return"]) is list
