import pytest

from context_signer.app.services.public_key_cache import PublicKeyCache


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_zero_ttl_disables_caching():
    cache = PublicKeyCache(0)

    cache.put("alias/a", b"der")

    assert cache.enabled is False
    assert cache.get("alias/a") is None
    assert len(cache) == 0


def test_entries_expire_after_ttl():
    clock = _Clock()
    cache = PublicKeyCache(60, clock=clock)
    cache.put("alias/a", b"der")

    clock.now += 59
    assert cache.get("alias/a") == b"der"

    clock.now += 1
    assert cache.get("alias/a") is None
    assert len(cache) == 0


def test_invalidate_single_key_and_all():
    cache = PublicKeyCache(60, clock=_Clock())
    cache.put("alias/a", b"a")
    cache.put("alias/b", b"b")

    cache.invalidate("alias/a")
    assert cache.get("alias/a") is None
    assert cache.get("alias/b") == b"b"

    cache.invalidate()
    assert len(cache) == 0


def test_negative_ttl_is_rejected():
    with pytest.raises(ValueError):
        PublicKeyCache(-1)
