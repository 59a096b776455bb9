import threading

from meshnode import Protocol
from meshnode.ticker import Ticker

from conftest import FAST, wait_until


def test_ticks_until_stopped():
    count = []
    ticker = Ticker("count", lambda: count.append(1), 0.01)
    ticker.start()
    assert wait_until(lambda: len(count) >= 3)

    ticker.stop()
    settled = len(count)
    assert not wait_until(lambda: len(count) > settled + 1, timeout=0.1)


def test_failing_tick_reports_and_stops():
    errors = []
    calls = []
    done = threading.Event()

    def tick():
        calls.append(1)
        raise RuntimeError("tick failed")

    def on_error(ex):
        errors.append(ex)
        done.set()

    ticker = Ticker("bad", tick, 0.01, on_error=on_error)
    ticker.start()
    assert done.wait(2)
    assert not wait_until(lambda: len(calls) > 1, timeout=0.1)
    assert str(errors[0]) == "tick failed"


def test_ticker_failure_is_fatal_for_the_node(recorder):
    node = Protocol(recorder, config=FAST)

    def explode():
        raise RuntimeError("flush failed")

    node.add_ticker("explode", explode, 0.01)
    node.start()
    try:
        assert wait_until(lambda: node.fatal_error is not None, timeout=2)
        assert str(node.fatal_error) == "flush failed"
    finally:
        node.stop()
