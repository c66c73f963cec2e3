"""Tests for the in-process metrics collector."""

import threading

from observability import Metrics, log_run_summary, metrics


class TestMetrics:
    def test_counter(self):
        m = Metrics()
        m.counter("memory.facts_added")
        m.counter("memory.facts_added", 4)
        assert m.get("memory.facts_added") == 5
        assert m.get("missing") == 0

    def test_timer(self):
        m = Metrics()
        with m.timer("memory.cleanup"):
            pass
        with m.timer("memory.cleanup"):
            pass
        summary = m.summary()["timers"]["memory.cleanup"]
        assert summary["count"] == 2
        assert summary["max"] >= summary["avg"] >= 0

    def test_timer_records_on_error(self):
        m = Metrics()
        try:
            with m.timer("boom"):
                raise RuntimeError
        except RuntimeError:
            pass
        assert m.summary()["timers"]["boom"]["count"] == 1

    def test_threads(self):
        m = Metrics()

        def bump():
            for _ in range(1000):
                m.counter("n")

        threads = [threading.Thread(target=bump) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert m.get("n") == 8000

    def test_reset(self):
        m = Metrics()
        m.counter("a")
        m.reset()
        assert m.summary() == {"counters": {}, "timers": {}}


def test_log_run_summary_does_not_raise():
    metrics.counter("memory.cleanup_runs")
    log_run_summary()
