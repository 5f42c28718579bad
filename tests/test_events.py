"""
Event Tests

Tests for context events: listener registration, ordering, early events
published during refresh, error handling and propagation to a parent
context.
"""

import os
import sys
import unittest
from typing import Any, List

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from conftest import TrellisTestCase
from trellis import (
    ComponentDefinition,
    ContainerPostProcessor,
    ContextClosedEvent,
    ContextEvent,
    ContextRefreshedEvent,
    ContextStartedEvent,
    EventListener,
    SimpleEventMulticaster,
    TrellisContainer,
    event_listener,
    logging_error_handler,
    order,
)
from trellis.exceptions import IllegalStateError


class OrderPlaced(ContextEvent):
    pass


class AuditListener(EventListener):
    """Listener component recording the type of every event"""

    def __init__(self, log: List[str]):
        self.log = log

    def on_event(self, event: Any) -> None:
        self.log.append(type(event).__name__)


class OrderListener(EventListener):
    """Only interested in OrderPlaced"""

    def __init__(self):
        self.received: List[Any] = []

    def on_event(self, event: Any) -> None:
        self.received.append(event)

    def supports_event_type(self, event_type: type) -> bool:
        return issubclass(event_type, OrderPlaced)


class PublishesDuringRefresh(ContainerPostProcessor):
    def __init__(self, context):
        self.context = context

    def post_process_container(self, container: TrellisContainer) -> None:
        self.context.publish_event(OrderPlaced(self))


class TestListenerRegistration(TrellisTestCase):
    """Test the ways listeners reach the multicaster."""

    def test_function_listener_added_before_refresh(self):
        received: List[Any] = []

        @event_listener(ContextRefreshedEvent)
        def on_refreshed(event):
            received.append(event)

        context = self.new_context(refresh=False)
        context.add_listener(on_refreshed)
        context.refresh()

        self.assertEqual(len(received), 1)
        self.assertIs(received[0].source, context)

    def test_listener_component_detected(self):
        """A listener component gets every event exactly once"""
        log: List[str] = []
        context = self.new_context(refresh=False)
        context.register_definition(ComponentDefinition("auditListener", AuditListener, constructor_args=[log]))
        context.refresh()

        context.publish_event(OrderPlaced(self))
        context.close()

        self.assertEqual(log, ["ContextRefreshedEvent", "OrderPlaced", "ContextClosedEvent"])

    def test_lazy_listener_component_created_for_delivery(self):
        log: List[str] = []
        context = self.new_context(refresh=False)
        context.register_definition(ComponentDefinition(
            "auditListener", AuditListener, constructor_args=[log], lazy=True
        ))
        context.refresh()

        self.assertEqual(log, ["ContextRefreshedEvent"])

    def test_supports_event_type_filters(self):
        context = self.new_context(refresh=False)
        context.register_definition(ComponentDefinition("orderListener", OrderListener))
        context.refresh()
        listener = context.get_instance("orderListener")

        event = OrderPlaced(self)
        context.publish_event(event)
        context.start()

        self.assertEqual(listener.received, [event])

    def test_event_type_of_function_listener(self):
        started: List[Any] = []

        @event_listener(ContextStartedEvent)
        def on_started(event):
            started.append(event)

        context = self.new_context()
        context.add_listener(on_started)

        context.publish_event(OrderPlaced(self))
        context.start()

        self.assertEqual([type(e) for e in started], [ContextStartedEvent])

    def test_remove_listener(self):
        received: List[Any] = []

        @event_listener(OrderPlaced)
        def on_order(event):
            received.append(event)

        context = self.new_context()
        context.add_listener(on_order)
        context.remove_listener(on_order)
        context.publish_event(OrderPlaced(self))

        self.assertEqual(received, [])

    def test_publish_before_refresh(self):
        context = self.new_context(refresh=False)

        with self.assertRaises(IllegalStateError):
            context.publish_event(OrderPlaced(self))


class TestEarlyEvents(TrellisTestCase):
    """Test events published before the multicaster exists."""

    def test_early_event_delivered_before_refreshed(self):
        received: List[str] = []

        @event_listener(ContextEvent)
        def record(event):
            received.append(type(event).__name__)

        context = self.new_context(refresh=False)
        context.add_listener(record)
        context.register_post_processor(PublishesDuringRefresh(context))
        context.refresh()

        self.assertEqual(received, ["OrderPlaced", "ContextRefreshedEvent"])


class TestListenerOrdering(unittest.TestCase):
    """Test ranked delivery."""

    def test_listeners_sorted_by_order(self):
        calls: List[str] = []

        @event_listener(OrderPlaced)
        @order(20)
        def second(event):
            calls.append("second")

        @event_listener(OrderPlaced)
        @order(10)
        def first(event):
            calls.append("first")

        @event_listener(OrderPlaced)
        def unranked(event):
            calls.append("unranked")

        multicaster = SimpleEventMulticaster()
        for listener in (unranked, second, first):
            multicaster.add_listener(listener)

        multicaster.multicast_event(OrderPlaced(self))

        self.assertEqual(calls, ["first", "second", "unranked"])

    def test_same_function_added_once(self):
        @event_listener(OrderPlaced)
        def on_order(event):
            pass

        multicaster = SimpleEventMulticaster()
        multicaster.add_listener(on_order)
        multicaster.add_listener(event_listener(OrderPlaced)(on_order.function))

        self.assertEqual(len(multicaster.listeners_for(OrderPlaced(self))), 1)

    def test_listener_by_name_looked_up_on_delivery(self):
        log: List[str] = []
        container = TrellisContainer()
        container.register_definition(ComponentDefinition("auditListener", AuditListener, constructor_args=[log]))
        multicaster = SimpleEventMulticaster(container)
        multicaster.add_listener_name("auditListener")

        self.assertFalse(container.cache.contains_singleton("auditListener"))

        multicaster.multicast_event(OrderPlaced(self))

        self.assertEqual(log, ["OrderPlaced"])


class TestListenerErrors(TrellisTestCase):
    """Test listener failures with and without an error handler."""

    @staticmethod
    def _listeners(calls: List[str]):
        @event_listener(OrderPlaced)
        @order(1)
        def failing(event):
            raise RuntimeError("listener failed")

        @event_listener(OrderPlaced)
        @order(2)
        def healthy(event):
            calls.append("healthy")

        return failing, healthy

    def test_error_propagates_without_handler(self):
        calls: List[str] = []
        context = self.new_context()
        for listener in self._listeners(calls):
            context.add_listener(listener)

        with self.assertRaises(RuntimeError):
            context.publish_event(OrderPlaced(self))

        self.assertEqual(calls, [])

    def test_logging_error_handler(self):
        calls: List[str] = []
        context = self.new_context(event_error_handler=logging_error_handler)
        for listener in self._listeners(calls):
            context.add_listener(listener)

        with self.assertLogs("trellis.events", level="ERROR") as logs:
            context.publish_event(OrderPlaced(self))

        self.assertIn("Error calling event listener", logs.output[0])
        self.assertEqual(calls, ["healthy"])


class TestParentPropagation(TrellisTestCase):
    """Test events travelling from a child context to its parent."""

    def test_child_events_reach_parent(self):
        received: List[Any] = []

        @event_listener(ContextEvent)
        def on_event(event):
            received.append(event)

        parent = self.new_context()
        parent.add_listener(on_event)
        child = self.new_context(refresh=False, parent=parent)
        child.refresh()

        child.publish_event(OrderPlaced(child))

        self.assertEqual([type(e) for e in received], [ContextRefreshedEvent, OrderPlaced])
        self.assertIs(received[0].source, child)

    def test_parent_events_do_not_reach_child(self):
        received: List[Any] = []

        @event_listener(OrderPlaced)
        def on_order(event):
            received.append(event)

        parent = self.new_context()
        child = self.new_context(parent=parent)
        child.add_listener(on_order)

        parent.publish_event(OrderPlaced(parent))

        self.assertEqual(received, [])

    def test_closed_event_published_once(self):
        closed: List[Any] = []

        @event_listener(ContextClosedEvent)
        def on_closed(event):
            closed.append(event)

        context = self.new_context()
        context.add_listener(on_closed)
        context.close()
        context.close()

        self.assertEqual(len(closed), 1)


if __name__ == "__main__":
    unittest.main()
