from cadence.application.parameter_cache import ParameterCache
from cadence.domain.parameters import DEFAULT_PARAMETERS


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_zero_ttl_disables_cache():
    cache = ParameterCache(ttl_seconds=0, refit_after=10)
    cache.put("u1", DEFAULT_PARAMETERS, 0.2, 25)
    assert not cache.enabled
    assert cache.get("u1", 25) is None
    assert len(cache) == 0


def test_entry_expires_after_ttl():
    clock = FakeClock()
    cache = ParameterCache(ttl_seconds=60, refit_after=10, clock=clock)
    cache.put("u1", DEFAULT_PARAMETERS, 0.2, 25)

    clock.now += 59
    hit = cache.get("u1", 25)
    assert hit is not None and hit.parameters is DEFAULT_PARAMETERS

    clock.now += 1
    assert cache.get("u1", 25) is None
    assert len(cache) == 0


def test_entry_expires_when_history_grows_or_shrinks():
    cache = ParameterCache(ttl_seconds=3600, refit_after=10, clock=FakeClock())
    cache.put("u1", DEFAULT_PARAMETERS, 0.2, 25)
    assert cache.get("u1", 34) is not None
    assert cache.get("u1", 35) is None

    cache.put("u1", DEFAULT_PARAMETERS, 0.2, 25)
    assert cache.get("u1", 24) is None


def test_invalidate():
    cache = ParameterCache(ttl_seconds=3600, refit_after=10, clock=FakeClock())
    cache.put("u1", DEFAULT_PARAMETERS, 0.2, 25)
    cache.put("u2", DEFAULT_PARAMETERS, 0.2, 25)

    cache.invalidate("u1")
    assert cache.get("u1", 25) is None
    assert cache.get("u2", 25) is not None

    cache.invalidate()
    assert len(cache) == 0
