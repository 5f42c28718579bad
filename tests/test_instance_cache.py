"""
Instance Cache Tests

Tests for InstanceCache: exactly-once singleton creation, early references,
cross-thread cycle detection, the dependency graph and destruction.
"""

import threading
import time
import unittest
from typing import List

from trellis import EarlyReference, InstanceCache
from trellis.exceptions import CircularDependencyError, IllegalStateError


class Node:
    def __init__(self, label: str):
        self.label = label
        self.other = None


class TestEarlyReference(unittest.TestCase):
    """Test the EarlyReference handle."""

    def test_factory_applied_once(self):
        calls: List[str] = []

        def wrap(raw):
            calls.append(raw.label)
            return ("wrapped", raw)

        raw = Node("a")
        handle = EarlyReference("a", raw, wrap)

        first = handle.resolve("b")
        second = handle.resolve("c")

        self.assertIs(first, second)
        self.assertEqual(calls, ["a"])
        self.assertEqual(handle.holders, ["b", "c"])
        self.assertTrue(handle.is_resolved)

    def test_value_before_resolution_is_raw(self):
        raw = Node("a")
        handle = EarlyReference("a", raw)

        self.assertFalse(handle.is_resolved)
        self.assertIs(handle.value, raw)

    def test_sealed_when_final_published(self):
        cache = InstanceCache()
        handle = cache.add_early("a", Node("a"))

        cache.add_singleton("a", Node("a"))

        self.assertTrue(handle.sealed)
        self.assertIsNone(cache.get_early_reference("a"))


class TestGetOrCreate(unittest.TestCase):
    """Test singleton creation through get_or_create."""

    def test_created_once(self):
        cache = InstanceCache()
        calls = []

        def factory():
            calls.append(1)
            return Node("a")

        first = cache.get_or_create("a", factory)
        second = cache.get_or_create("a", factory)

        self.assertIs(first, second)
        self.assertEqual(len(calls), 1)
        self.assertEqual(cache.singleton_names(), ["a"])

    def test_concurrent_callers_share_one_instance(self):
        """Threads asking for the same name block until the first creation finishes."""
        cache = InstanceCache()
        created: List[Node] = []
        results: List[Node] = []
        barrier = threading.Barrier(8)

        def factory():
            time.sleep(0.05)
            node = Node("shared")
            created.append(node)
            return node

        def worker():
            barrier.wait()
            results.append(cache.get_or_create("shared", factory))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        self.assertEqual(len(created), 1)
        self.assertEqual(len(results), 8)
        self.assertTrue(all(r is created[0] for r in results))

    def test_failed_creation_leaves_no_trace(self):
        cache = InstanceCache()

        def factory():
            cache.add_early("a", Node("a"))
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            cache.get_or_create("a", factory)

        self.assertFalse(cache.contains_singleton("a"))
        self.assertFalse(cache.is_in_creation("a"))
        self.assertIsNone(cache.get_early_reference("a"))

        self.assertEqual(cache.get_or_create("a", lambda: Node("retry")).label, "retry")

    def test_early_reference_visible_to_creating_thread_only(self):
        cache = InstanceCache()
        seen = {}

        def factory():
            node = Node("a")
            cache.add_early("a", node)
            seen["own"] = cache.get_singleton("a", holder="b")

            other = threading.Thread(target=lambda: seen.setdefault("other", cache.get_singleton("a")))
            other.start()
            other.join(timeout=5)
            return node

        node = cache.get_or_create("a", factory)

        self.assertIs(seen["own"], node)
        self.assertIsNone(seen["other"])

    def test_creation_during_destruction_rejected(self):
        cache = InstanceCache()
        errors: List[Exception] = []

        def destroy():
            try:
                cache.get_or_create("late", lambda: Node("late"))
            except IllegalStateError as e:
                errors.append(e)

        cache.add_singleton("a", Node("a"))
        cache.register_disposable("a", destroy)

        cache.destroy_singletons()

        self.assertEqual(len(errors), 1)
        self.assertIn("while singletons", str(errors[0]))
        self.assertFalse(cache.is_destroying)


class TestCrossThreadCycles(unittest.TestCase):
    """Test two threads each creating one side of a cycle."""

    def _run_pair(self, publish_early: bool):
        cache = InstanceCache()
        started = {"a": threading.Event(), "b": threading.Event()}
        errors: List[Exception] = []

        def factory_for(name: str, other: str, delay: float):
            def factory():
                node = Node(name)
                if publish_early:
                    cache.add_early(name, node)
                started[name].set()
                started[other].wait(5)
                time.sleep(delay)
                node.other = cache.get_or_create(other, lambda: Node(other), holder=name)
                return node
            return factory

        def run(name: str, other: str, delay: float):
            try:
                cache.get_or_create(name, factory_for(name, other, delay))
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=run, args=("a", "b", 0.0)),
            threading.Thread(target=run, args=("b", "a", 0.1)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        self.assertFalse(any(t.is_alive() for t in threads), "threads deadlocked")
        return cache, errors

    def test_cycle_resolved_with_early_references(self):
        cache, errors = self._run_pair(publish_early=True)

        self.assertEqual(errors, [])
        a = cache.get_final("a")
        b = cache.get_final("b")
        self.assertIs(a.other, b)
        self.assertIs(b.other, a)

    def test_cycle_without_early_reference_raises(self):
        cache, errors = self._run_pair(publish_early=False)

        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], CircularDependencyError)
        # The surviving thread creates the other side itself once the lock is free
        self.assertEqual(sorted(cache.singleton_names()), ["a", "b"])


class TestDependencyGraph(unittest.TestCase):
    """Test dependent bookkeeping."""

    def setUp(self):
        self.cache = InstanceCache()
        self.cache.register_dependent("db", "repo")
        self.cache.register_dependent("repo", "service")

    def test_direct_relations(self):
        self.assertEqual(self.cache.dependents_of("db"), ["repo"])
        self.assertEqual(self.cache.dependencies_of("service"), ["repo"])

    def test_transitive_dependent(self):
        self.assertTrue(self.cache.is_dependent("db", "service"))
        self.assertFalse(self.cache.is_dependent("service", "db"))

    def test_self_dependency_ignored(self):
        self.cache.register_dependent("db", "db")

        self.assertEqual(self.cache.dependents_of("db"), ["repo"])


class TestDestruction(unittest.TestCase):
    """Test destroy_singletons ordering and error handling."""

    def test_dependents_destroyed_first(self):
        cache = InstanceCache()
        log: List[str] = []
        for name in ("service", "repo", "db"):
            cache.add_singleton(name, Node(name))
            cache.register_disposable(name, lambda name=name: log.append(name))
        cache.register_dependent("db", "repo")
        cache.register_dependent("repo", "service")

        cache.destroy_singletons()

        self.assertEqual(log, ["service", "repo", "db"])
        self.assertEqual(cache.singleton_count(), 0)

    def test_failing_callback_logged(self):
        cache = InstanceCache()
        log: List[str] = []

        def explode():
            raise RuntimeError("boom")

        cache.add_singleton("a", Node("a"))
        cache.register_disposable("a", lambda: log.append("a"))
        cache.add_singleton("b", Node("b"))
        cache.register_disposable("b", explode)

        with self.assertLogs("trellis.instance_cache", level="WARNING"):
            cache.destroy_singletons()

        self.assertEqual(log, ["a"])

    def test_contained_destroyed_with_container(self):
        cache = InstanceCache()
        log: List[str] = []
        cache.add_singleton("outer", Node("outer"))
        cache.register_disposable("outer", lambda: log.append("outer"))
        cache.register_disposable("outer#inner#1", lambda: log.append("inner"))
        cache.register_contained("outer", "outer#inner#1")

        cache.destroy_singleton("outer")

        self.assertEqual(log, ["outer", "inner"])
        self.assertFalse(cache.has_disposable("outer#inner#1"))

    def test_register_singleton_twice(self):
        cache = InstanceCache()
        cache.register_singleton("a", Node("a"))

        with self.assertRaises(IllegalStateError):
            cache.register_singleton("a", Node("b"))


if __name__ == "__main__":
    unittest.main()
