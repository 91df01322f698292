import pytest

from hifi_cli.core.eta import EtaEstimator
from hifi_cli.utils.formatting import format_eta


class Clock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_two_samples_give_linear_estimate():
    clock = Clock()
    eta = EtaEstimator(clock)
    eta.record("job", 10)
    assert eta.estimate("job") is None

    clock.now += 5
    eta.record("job", 20)
    assert eta.estimate("job") == pytest.approx(40.0)


def test_repeated_progress_is_not_a_sample():
    clock = Clock()
    eta = EtaEstimator(clock)
    eta.record("job", 10)
    clock.now += 5
    eta.record("job", 10)
    assert eta.estimate("job") is None


def test_zero_progress_is_ignored():
    clock = Clock()
    eta = EtaEstimator(clock)
    eta.record("job", 0)
    clock.now += 1
    eta.record("job", 10)
    assert eta.estimate("job") is None


def test_window_keeps_last_five_samples():
    clock = Clock()
    eta = EtaEstimator(clock)
    # Slow start, then 10%/s
    eta.record("job", 1)
    clock.now += 100
    for progress in (10, 20, 30, 40, 50):
        eta.record("job", progress)
        clock.now += 1
    # Window is 10..50 over 4 s
    assert eta.estimate("job") == pytest.approx(5.0)


def test_discard_and_retain_only():
    clock = Clock()
    eta = EtaEstimator(clock)
    for job_id in ("a", "b"):
        eta.record(job_id, 10)
        clock.now += 1
        eta.record(job_id, 20)
    eta.retain_only(["a"])
    assert eta.estimate("a") is not None
    assert eta.estimate("b") is None
    eta.discard("a")
    assert eta.estimate("a") is None


@pytest.mark.parametrize(
    "seconds, expected",
    [(None, ""), (-1, ""), (42, "42s"), (185, "3m 5s"), (3720, "1h 2m")],
)
def test_format_eta(seconds, expected):
    assert format_eta(seconds) == expected
