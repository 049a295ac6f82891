from __future__ import annotations

import pytest

from speech_cache import SpeechCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_put_then_get_returns_bytes() -> None:
    cache = SpeechCache(clock=FakeClock())
    cache.put("hej", b"audio")

    assert cache.get("hej") == b"audio"
    assert "hej" in cache
    assert cache.get("farvel") is None


def test_expired_entry_is_a_miss_but_not_deleted_by_get() -> None:
    clock = FakeClock()
    cache = SpeechCache(ttl_s=60.0, clock=clock)
    cache.put("hej", b"audio")

    clock.now = 60.0
    assert cache.get("hej") == b"audio"  # age == ttl is still live

    clock.now = 60.5
    assert cache.get("hej") is None
    assert len(cache) == 1

    cache.put("other", b"x")
    assert len(cache) == 1
    assert cache.get("other") == b"x"


def test_capacity_evicts_oldest_inserted() -> None:
    clock = FakeClock()
    cache = SpeechCache(capacity=3, clock=clock)
    for i, key in enumerate(["a", "b", "c", "d"]):
        clock.now = float(i)
        cache.put(key, key.encode())

    assert len(cache) == 3
    assert cache.get("a") is None
    assert [cache.get(k) for k in ("b", "c", "d")] == [b"b", b"c", b"d"]


def test_capacity_plus_one_with_same_timestamp_evicts_first_key() -> None:
    cache = SpeechCache(capacity=100, clock=FakeClock())
    for i in range(101):
        cache.put(f"k{i}", b"x")

    assert len(cache) == 100
    assert cache.get("k0") is None
    assert cache.get("k1") == b"x"
    assert cache.get("k100") == b"x"


def test_overwrite_refreshes_timestamp() -> None:
    clock = FakeClock()
    cache = SpeechCache(capacity=2, ttl_s=10.0, clock=clock)
    cache.put("a", b"1")
    clock.now = 1.0
    cache.put("b", b"2")
    clock.now = 2.0
    cache.put("a", b"3")
    clock.now = 3.0
    cache.put("c", b"4")

    assert cache.get("a") == b"3"
    assert cache.get("b") is None
    assert cache.get("c") == b"4"


def test_clear_drops_everything() -> None:
    cache = SpeechCache(clock=FakeClock())
    cache.put("a", b"1")
    cache.put("b", b"2")
    cache.clear()

    assert len(cache) == 0
    assert cache.get("a") is None


def test_invalid_capacity_rejected() -> None:
    with pytest.raises(ValueError):
        SpeechCache(capacity=0)
