import redis

from marketplace.infra import kv_store


def test_set_get_and_ttl(kv):
    assert kv_store.kv_set("k", "v", 60) is True
    assert kv_store.kv_get("k") == "v"
    assert 0 < kv.ttl("k") <= 60


def test_set_if_absent_only_first_writer_wins(kv):
    assert kv_store.kv_set_if_absent("lock", "a", 30) is True
    assert kv_store.kv_set_if_absent("lock", "b", 30) is False
    assert kv.get("lock") == "a"


def test_delete(kv):
    kv.set("k", "v")
    kv_store.kv_delete("k")
    assert kv_store.kv_get("k") is None


def test_redis_outage_degrades_to_empty_cache(monkeypatch):
    class _Down:
        def get(self, *a, **kw):
            raise redis.ConnectionError("down")

        set = delete = get

    monkeypatch.setattr(kv_store, "_redis", _Down())
    assert kv_store.kv_get("k") is None
    assert kv_store.kv_set("k", "v", 10) is False
    assert kv_store.kv_set_if_absent("k", "v", 10) is True
    kv_store.kv_delete("k")
