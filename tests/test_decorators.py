import pytest

from pulsetrade.decorators import log_execution, retry


class Flaky(Exception):
    def __init__(self, retry_after=None):
        super().__init__("try later")
        self.retry_after = retry_after


def failing(times, error_factory):
    calls = []

    def func():
        calls.append(1)
        if len(calls) <= times:
            raise error_factory()
        return "ok"
    return func, calls


def test_retry_backs_off_exponentially():
    waits = []
    func, calls = failing(3, Flaky)

    assert retry(max_attempts=4, delay=1.0, backoff=2.0, exceptions=(Flaky,), sleep=waits.append)(func)() == "ok"
    assert len(calls) == 4
    assert waits == [1.0, 2.0, 4.0]


def test_retry_honours_retry_after_within_cap():
    waits = []
    func, _ = failing(2, lambda: Flaky(retry_after=30))

    retry(max_attempts=3, delay=1.0, exceptions=(Flaky,), max_delay=10, sleep=waits.append)(func)()

    assert waits == [10, 10]


def test_retry_gives_up_and_reraises():
    waits = []
    func, calls = failing(5, Flaky)

    with pytest.raises(Flaky):
        retry(max_attempts=2, delay=0, exceptions=(Flaky,), sleep=waits.append)(func)()
    assert len(calls) == 2


def test_other_exceptions_are_not_retried():
    func, calls = failing(1, lambda: KeyError("x"))

    with pytest.raises(KeyError):
        retry(max_attempts=3, delay=0, exceptions=(Flaky,), sleep=lambda s: None)(func)()
    assert len(calls) == 1


def test_log_execution_preserves_result_and_errors():
    @log_execution
    def double(x):
        return x * 2

    @log_execution
    def broken():
        raise ValueError("bad")

    assert double(4) == 8
    assert double.__name__ == "double"
    with pytest.raises(ValueError):
        broken()
