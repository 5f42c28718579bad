"""
Scope Tests

Tests for custom scopes: RequestScope blocks, SimpleThreadScope and
scoped components resolved through the container.
"""

import os
import sys
import threading
import unittest
from typing import List

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from conftest import TrellisTestCase
from trellis import (
    ComponentDefinition,
    DisposableComponent,
    RequestScope,
    SimpleThreadScope,
    TrellisContainer,
    TrellisModule,
)
from trellis.exceptions import (
    DefinitionStoreError,
    IllegalStateError,
    ScopeNotActiveError,
    ScopeOperationNotSupportedError,
)


class RequestContext(DisposableComponent):
    destroyed: List[str] = []

    def __init__(self):
        self.id = id(self)

    def destroy(self):
        self.destroyed.append("requestContext")


class Cache:
    def __init__(self):
        self.thread = threading.current_thread().name


class TestRequestScope(unittest.TestCase):
    """Test RequestScope blocks in isolation."""

    def setUp(self):
        self.scope = RequestScope()

    def test_inactive_outside_block(self):
        self.assertFalse(self.scope.is_active)

        with self.assertRaises(ScopeNotActiveError) as ctx:
            self.scope.get("x", object)

        self.assertIn("Scope 'request' is not active", str(ctx.exception))

    def test_same_instance_within_block(self):
        with self.scope.enter("req-1") as block:
            first = self.scope.get("x", object)
            second = self.scope.get("x", object)

            self.assertIs(first, second)
            self.assertIs(block.get_cached_instance("x"), first)
            self.assertEqual(self.scope.conversation_id(), "req-1")
            self.assertIs(self.scope.resolve_contextual_object("request"), block)
            self.assertIsNone(self.scope.resolve_contextual_object("session"))

    def test_new_instance_per_block(self):
        with self.scope.enter("req-1"):
            first = self.scope.get("x", object)
        with self.scope.enter("req-2"):
            second = self.scope.get("x", object)

        self.assertIsNot(first, second)

    def test_callbacks_run_in_reverse_order_on_exit(self):
        log: List[str] = []
        with self.scope.enter("req-1"):
            self.scope.register_destruction_callback("a", lambda: log.append("a"))
            self.scope.register_destruction_callback("b", lambda: log.append("b"))

        self.assertEqual(log, ["b", "a"])

    def test_failing_callback_does_not_stop_others(self):
        log: List[str] = []

        def explode():
            raise RuntimeError("boom")

        with self.assertLogs("trellis.scope", level="WARNING"):
            with self.scope.enter("req-1"):
                self.scope.register_destruction_callback("a", lambda: log.append("a"))
                self.scope.register_destruction_callback("b", explode)

        self.assertEqual(log, ["a"])

    def test_remove_drops_instance_and_callback(self):
        log: List[str] = []
        with self.scope.enter("req-1"):
            instance = self.scope.get("x", object)
            self.scope.register_destruction_callback("x", lambda: log.append("x"))

            self.assertIs(self.scope.remove("x"), instance)
            self.assertIsNone(self.scope.remove("x"))

        self.assertEqual(log, [])

    def test_nested_blocks(self):
        with self.scope.enter("outer"):
            outer = self.scope.get("x", object)
            with self.scope.enter("inner"):
                inner = self.scope.get("x", object)
            self.assertIs(self.scope.get("x", object), outer)

        self.assertIsNot(inner, outer)

    def test_threads_see_their_own_block(self):
        results = {}

        def worker(request_id: str):
            with self.scope.enter(request_id):
                results[request_id] = self.scope.conversation_id()

        threads = [threading.Thread(target=worker, args=(f"req-{i}",)) for i in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        self.assertEqual(results, {f"req-{i}": f"req-{i}" for i in range(5)})
        self.assertFalse(self.scope.is_active)


class TestSimpleThreadScope(unittest.TestCase):
    """Test SimpleThreadScope."""

    def test_one_instance_per_thread(self):
        scope = SimpleThreadScope()
        main = scope.get("cache", Cache)
        other = {}

        thread = threading.Thread(target=lambda: other.setdefault("cache", scope.get("cache", Cache)))
        thread.start()
        thread.join(timeout=5)

        self.assertIs(scope.get("cache", Cache), main)
        self.assertIsNot(other["cache"], main)

    def test_destruction_callbacks_unsupported(self):
        with self.assertRaises(ScopeOperationNotSupportedError):
            SimpleThreadScope().register_destruction_callback("cache", lambda: None)


class TestScopedComponents(TrellisTestCase):
    """Test scoped components resolved through a container or context."""

    def setUp(self):
        super().setUp()
        RequestContext.destroyed = []

    def test_request_scoped_component(self):
        request_scope = RequestScope()
        container = TrellisContainer()
        container.register_scope("request", request_scope)
        container.register_definition(ComponentDefinition("requestContext", RequestContext, scope="request"))

        with request_scope.enter("req-1"):
            first = container.get_instance("requestContext")
            self.assertIs(container.get_instance("requestContext"), first)
        with request_scope.enter("req-2"):
            second = container.get_instance("requestContext")

        self.assertIsNot(first, second)
        self.assertEqual(RequestContext.destroyed, ["requestContext", "requestContext"])

    def test_scoped_component_outside_scope(self):
        container = TrellisContainer()
        container.register_scope("request", RequestScope())
        container.register_definition(ComponentDefinition("requestContext", RequestContext, scope="request"))

        with self.assertRaises(ScopeNotActiveError):
            container.get_instance("requestContext")

    def test_unknown_scope(self):
        container = TrellisContainer()
        container.register_definition(ComponentDefinition("requestContext", RequestContext, scope="session"))

        with self.assertRaises(DefinitionStoreError) as ctx:
            container.get_instance("requestContext")

        self.assertIn("'session'", str(ctx.exception))

    def test_builtin_scopes_cannot_be_replaced(self):
        container = TrellisContainer()

        with self.assertRaises(DefinitionStoreError):
            container.register_scope("singleton", RequestScope())

        self.assertEqual(container.registered_scope_names(), [])

    def test_thread_scope_without_destruction_warns(self):
        container = TrellisContainer()
        container.register_scope("thread", SimpleThreadScope())
        container.register_definition(ComponentDefinition("requestContext", RequestContext, scope="thread"))

        with self.assertLogs("trellis.container", level="WARNING") as logs:
            container.get_instance("requestContext")

        self.assertIn("does not support destruction callbacks", logs.output[0])

    def test_destroy_scoped_instance(self):
        request_scope = RequestScope()
        container = TrellisContainer()
        container.register_scope("request", request_scope)
        container.register_definition(ComponentDefinition("requestContext", RequestContext, scope="request"))

        with request_scope.enter("req-1"):
            first = container.get_instance("requestContext")
            container.destroy_scoped_instance("requestContext")
            self.assertEqual(RequestContext.destroyed, ["requestContext"])
            self.assertIsNot(container.get_instance("requestContext"), first)

    def test_destroy_scoped_instance_rejects_singletons(self):
        container = TrellisContainer()
        container.register_definition(ComponentDefinition("requestContext", RequestContext))

        with self.assertRaises(IllegalStateError):
            container.destroy_scoped_instance("requestContext")

    def test_scope_registered_on_context_before_refresh(self):
        module = TrellisModule()
        with module:
            with module.scope("thread"):
                module.scoped[Cache](Cache)

        context = self.new_context(module, refresh=False)
        thread_scope = SimpleThreadScope()
        context.register_scope("thread", thread_scope)
        context.refresh()

        self.assertIs(context.get_registered_scope("thread"), thread_scope)
        self.assertIs(context.get_instance("cache"), context.get_instance(Cache))

    def test_context_rejects_builtin_scope_names(self):
        context = self.new_context(refresh=False)

        with self.assertRaises(DefinitionStoreError):
            context.register_scope("prototype", RequestScope())


if __name__ == "__main__":
    unittest.main()
