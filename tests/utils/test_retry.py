import pytest

from clusterboot.utils import retry as retry_mod
from clusterboot.utils.retry import RetryError, backoff_delays, retry


def test_backoff_doubles_and_caps():
    assert list(backoff_delays(1, 5, 6)) == [1, 2, 4, 5, 5]
    assert list(backoff_delays(1, 5, 1)) == []


def test_retry_until_success(monkeypatch):
    sleeps = []
    monkeypatch.setattr(retry_mod.time, "sleep", sleeps.append)
    calls = {"n": 0}

    @retry(retries=3, delay=0.5, retry_on=(OSError,))
    def flaky():
        calls["n"] += 1
        if calls["n"] < 3:
            raise OSError("refused")
        return "ok"

    assert flaky() == "ok"
    assert sleeps == [0.5, 0.5]


def test_retry_gives_up(monkeypatch):
    monkeypatch.setattr(retry_mod.time, "sleep", lambda s: None)
    seen = []

    @retry(retries=2, delay=1, max_delay=8, retry_on=(OSError,), on_retry=lambda a, e: seen.append(a))
    def down():
        raise OSError("unreachable")

    with pytest.raises(RetryError) as exc:
        down()
    assert isinstance(exc.value.__cause__, OSError)
    assert seen == [1, 2]


def test_other_exceptions_propagate():
    @retry(retries=3, delay=0, retry_on=(OSError,))
    def bad():
        raise ValueError("nope")

    with pytest.raises(ValueError):
        bad()
