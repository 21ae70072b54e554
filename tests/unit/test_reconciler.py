"""Unit tests for local/remote reconciliation."""

import random
from datetime import datetime, timedelta, timezone

from focuskit.models import LocalId, Quote, RemoteId, Task
from focuskit.sync import merge, newest_first

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _task(record_id, title: str = "t", minutes: int = 0) -> Task:
    return Task(id=record_id, title=title, created_at=T0 + timedelta(minutes=minutes))


def _random_sets(seed: int) -> tuple[list[Task], list[Task]]:
    rng = random.Random(seed)
    remote = [
        _task(RemoteId(value=str(rng.randint(1, 15))), f"r{i}", rng.randint(0, 5))
        for i in range(rng.randint(0, 8))
    ]
    local = [
        _task(LocalId(value=f"local_{rng.randint(1, 15)}"), f"l{i}", rng.randint(0, 5))
        for i in range(rng.randint(0, 8))
    ]
    # Stale shadows: local copies of ids the remote already holds.
    local += [r.model_copy(update={"title": "stale"}) for r in remote[: rng.randint(0, 2)]]
    return local, remote


def test_merge_empty_inputs() -> None:
    assert merge([], []) == []


def test_local_and_remote_both_present() -> None:
    """merge([local_1], [remote_9]) keeps both, newest first."""
    local = _task(LocalId(value="local_1"), "local", minutes=5)
    remote = _task(RemoteId(value="9"), "remote", minutes=1)
    assert merge([local], [remote]) == [local, remote]


def test_remote_wins_on_collision() -> None:
    """Same remote id in both sets: exactly one record, the remote copy."""
    old = Quote(id=RemoteId(value="9"), content="old", created_at=T0)
    new = Quote(id=RemoteId(value="9"), content="new", created_at=T0)
    merged = merge([old], [new])
    assert len(merged) == 1
    assert merged[0].content == "new"


def test_equal_timestamps_ordered_by_id() -> None:
    """Ties on created_at keep a stable id order regardless of input order."""
    a = _task(RemoteId(value="a"))
    b = _task(RemoteId(value="b"))
    c = _task(LocalId(value="local_c"))
    assert merge([c], [b, a]) == merge([c], [a, b])
    assert [r.id.value for r in newest_first([b, c, a])] == ["local_c", "a", "b"]


def test_merge_properties_hold_for_random_sets() -> None:
    """Idempotence, no duplicate ids and local-only conservation."""
    for seed in range(200):
        local, remote = _random_sets(seed)
        merged = merge(local, remote)

        assert merge(merged, remote) == merged

        ids = [r.id for r in merged]
        assert len(ids) == len(set(ids))

        remote_ids = {r.id for r in remote}
        first_local: dict = {}
        for record in local:
            first_local.setdefault(record.id, record)
        for record_id, record in first_local.items():
            if record_id not in remote_ids:
                assert record in merged


def test_order_none_keeps_remote_first() -> None:
    local = _task(LocalId(value="local_1"), minutes=10)
    remote = _task(RemoteId(value="1"), minutes=0)
    assert merge([local], [remote], order=None) == [remote, local]
