from datetime import datetime, timezone

from services.cache import IMAGES, CacheService
from services.sync_status import FAILED, IDLE, SYNCING, SyncStatusPublisher


def test_lifecycle_updates_state_and_notifies():
    publisher = SyncStatusPublisher()
    seen = []
    publisher.subscribe(seen.append)

    publisher.started("Full sync")
    publisher.progress(1.7)
    assert publisher.current.progress == 1.0
    assert publisher.current.state == SYNCING

    publisher.failed(RuntimeError("boom"))
    assert publisher.current.has_error is True
    assert publisher.current.state == FAILED
    assert publisher.current.in_progress is False

    moment = datetime(2024, 5, 1, tzinfo=timezone.utc)
    publisher.finished(moment)
    assert publisher.current.state == IDLE
    assert publisher.current.has_error is False
    assert publisher.current.last_synced_at == moment
    assert len(seen) == 4


def test_failing_listener_does_not_block_others():
    publisher = SyncStatusPublisher()
    seen = []

    def broken(status):
        raise ValueError("listener bug")

    publisher.subscribe(broken)
    publisher.subscribe(seen.append)
    publisher.progress(0.5, "Halfway")
    publisher.unsubscribe(seen.append)
    publisher.progress(0.6)

    assert [status.status_text for status in seen] == ["Halfway"]


def test_cache_eviction_and_missing_ids():
    cache = CacheService()
    cache.set(IMAGES, "a.jpg", b"1")
    cache.set(IMAGES, "b.jpg", b"2")

    assert cache.evict_many(IMAGES, ["a.jpg", "zzz.jpg"]) == 1
    assert cache.keys(IMAGES) == ["b.jpg"]

    cache.mark_missing("user", "u-9")
    assert cache.is_missing("user", "u-9")
    assert not cache.is_missing("project", "u-9")

    cache.clear(IMAGES)
    assert cache.keys(IMAGES) == []
    assert cache.is_missing("user", "u-9")
