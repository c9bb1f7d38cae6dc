from __future__ import annotations

import threading

from backend.services.snapshot_service import SchedulingSnapshot, SnapshotStore


def test_latest_commit_wins():
    store: SnapshotStore[str] = SnapshotStore()
    first = store.begin_fetch()
    second = store.begin_fetch()

    assert store.commit(second, "newer") is True
    assert store.commit(first, "stale") is False
    assert store.latest() == "newer"
    assert store.committed_epoch == second


def test_in_order_commits_are_accepted():
    store: SnapshotStore[SchedulingSnapshot] = SnapshotStore()
    assert store.latest() is None
    for _ in range(3):
        epoch = store.begin_fetch()
        snapshot = SchedulingSnapshot()
        assert store.commit(epoch, snapshot) is True
        assert store.latest() is snapshot


def test_unissued_or_repeated_epochs_are_rejected():
    store: SnapshotStore[int] = SnapshotStore()
    assert store.commit(1, 1) is False
    epoch = store.begin_fetch()
    assert store.commit(epoch, 1) is True
    assert store.commit(epoch, 2) is False
    assert store.latest() == 1


def test_concurrent_fetches_keep_highest_epoch():
    store: SnapshotStore[int] = SnapshotStore()
    epochs = [store.begin_fetch() for _ in range(20)]

    threads = [threading.Thread(target=store.commit, args=(epoch, epoch)) for epoch in reversed(epochs)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.latest() == max(epochs)
