"""Tests for CallbackRegistry and CorrelationTable."""
import threading

import pytest

from signstream.core.correlation import CorrelationTable
from signstream.core.registry import CallbackRegistry


class TestCallbackRegistry:
    def test_dispatch_reaches_every_handler(self):
        registry = CallbackRegistry("test")
        a, b = [], []
        registry.add(a.append)
        registry.add(b.append)

        assert registry.dispatch("x") == 2
        assert a == ["x"] and b == ["x"]

    def test_handles_are_distinct(self):
        registry = CallbackRegistry()
        h1 = registry.add(lambda p: None)
        h2 = registry.add(lambda p: None)
        assert h1 != h2
        assert len(registry) == 2

    def test_remove_by_handle(self):
        registry = CallbackRegistry()
        seen = []
        handle = registry.add(seen.append)

        assert registry.remove(handle) is True
        assert registry.remove(handle) is False
        registry.dispatch(1)
        assert seen == []

    def test_named_handler_is_replaced(self):
        registry = CallbackRegistry()
        first, second = [], []
        registry.add(first.append, name="sink")
        handle = registry.add(second.append, name="sink")

        registry.dispatch(1)
        assert first == [] and second == [1]
        assert handle in registry
        assert "sink" in registry
        assert registry.remove("sink")

    def test_names_never_collide_with_automatic_handles(self):
        registry = CallbackRegistry()
        seen = []
        auto = registry.add(seen.append)
        auto_id = auto.key[1]

        assert registry.remove(auto_id) is False
        assert auto_id not in registry
        registry.add(lambda p: None, name=str(auto_id))
        assert len(registry) == 2

        registry.dispatch("x")
        assert seen == ["x"]

    def test_non_string_names_are_rejected(self):
        with pytest.raises(TypeError):
            CallbackRegistry().add(lambda p: None, name=3)

    def test_handler_errors_are_contained(self):
        registry = CallbackRegistry()
        seen = []

        def broken(payload):
            raise RuntimeError("boom")

        registry.add(broken)
        registry.add(seen.append)
        assert registry.dispatch("x") == 2
        assert seen == ["x"]

    def test_propagate_errors(self):
        registry = CallbackRegistry(propagate_errors=True)
        registry.add(lambda payload: 1 / 0)
        with pytest.raises(ZeroDivisionError):
            registry.dispatch(None)

    def test_handler_may_remove_itself_during_dispatch(self):
        registry = CallbackRegistry()
        calls = []
        handles = {}

        def once(payload):
            calls.append(payload)
            registry.remove(handles["once"])

        handles["once"] = registry.add(once)
        registry.dispatch(1)
        registry.dispatch(2)
        assert calls == [1]

    def test_clear(self):
        registry = CallbackRegistry()
        registry.add(lambda p: None)
        registry.clear()
        assert len(registry) == 0
        assert registry.dispatch(None) == 0


class TestCorrelationTable:
    def test_resolve_pops_entry(self):
        table = CorrelationTable()
        table.submit(10, "img10")
        assert 10 in table
        assert table.resolve(10) == "img10"
        assert table.resolve(10) is None

    def test_submit_purges_older_entries(self):
        table = CorrelationTable()
        table.submit(1, "a")
        table.submit(2, "b")
        assert table.submit(5, "c") == 2
        assert len(table) == 1
        assert table.resolve(1) is None
        assert table.resolve(5) == "c"

    def test_same_timestamp_replaces(self):
        table = CorrelationTable()
        table.submit(3, "a")
        assert table.submit(3, "b") == 0
        assert table.resolve(3) == "b"

    def test_late_result_is_dropped(self):
        table = CorrelationTable()
        table.submit(100, "old")
        table.submit(133, "new")
        assert table.resolve(100) is None
        assert table.resolve(133) == "new"

    def test_size_stays_bounded_under_concurrency(self):
        table = CorrelationTable()
        barrier = threading.Barrier(2)

        def producer():
            barrier.wait()
            for ts in range(1000):
                table.submit(ts, ts)

        def consumer():
            barrier.wait()
            for ts in range(1000):
                table.resolve(ts)

        threads = [threading.Thread(target=producer), threading.Thread(target=consumer)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(table) <= 1
