"""
Collaborator Tests

Tests for value resolution and type conversion of definition values, and
for the ordering helpers shared by processors, listeners and collections.
"""

import unittest
from typing import List

from trellis import (
    ComponentDefinition,
    LOWEST_PRECEDENCE,
    Ordered,
    PlaceholderValueResolver,
    SimpleTypeConverter,
    TrellisContainer,
    Value,
    order,
)
from trellis.exceptions import CreationError, TypeMismatchError
from trellis.order import get_order, is_ordered, sort_by_order


class Server:
    port: int
    debug: bool

    def __init__(self, host: str, workers: int = 1):
        self.host = host
        self.workers = workers


class TestPlaceholderValueResolver(unittest.TestCase):
    """Test ${key} and ${key:default} replacement."""

    def setUp(self):
        self.resolver = PlaceholderValueResolver({"db.host": "localhost", "db.port": "5432"})

    def test_replaces_placeholders(self):
        self.assertEqual(self.resolver.resolve("${db.host}:${db.port}"), "localhost:5432")

    def test_default_value(self):
        self.assertEqual(self.resolver.resolve("${db.pool:5}"), "5")

    def test_missing_without_default(self):
        with self.assertRaises(KeyError):
            self.resolver.resolve("${db.user}")

    def test_non_strings_unchanged(self):
        marker = object()
        self.assertIs(self.resolver.resolve(marker), marker)
        self.assertEqual(self.resolver.resolve("plain"), "plain")


class TestSimpleTypeConverter(unittest.TestCase):
    """Test scalar conversion."""

    def setUp(self):
        self.converter = SimpleTypeConverter()

    def test_scalars_from_strings(self):
        self.assertEqual(self.converter.convert("8080", int), 8080)
        self.assertEqual(self.converter.convert("0.5", float), 0.5)
        self.assertIs(self.converter.convert("on", bool), True)
        self.assertIs(self.converter.convert("No", bool), False)

    def test_int_widened_to_float(self):
        self.assertEqual(self.converter.convert(3, float), 3.0)

    def test_matching_and_untyped_values_pass_through(self):
        value = ["a"]
        self.assertIs(self.converter.convert(value, list), value)
        self.assertIs(self.converter.convert(value, List[str]), value)
        self.assertIs(self.converter.convert(value, None), value)
        self.assertIsNone(self.converter.convert(None, int))

    def test_unconvertible_value(self):
        with self.assertRaises(TypeMismatchError) as ctx:
            self.converter.convert("many", int)

        self.assertIn("Cannot convert value 'many' of type str to required type int", str(ctx.exception))


class TestValuesInDefinitions(unittest.TestCase):
    """Test resolution and conversion applied by the container."""

    def _container(self, **definition_options) -> TrellisContainer:
        container = TrellisContainer(value_resolver=PlaceholderValueResolver({
            "server.host": "example.org",
            "server.port": "8443",
            "server.debug": "true",
            "server.workers": "4",
        }))
        container.register_definition(ComponentDefinition("server", Server, **definition_options))
        return container

    def test_properties_converted_to_annotated_types(self):
        container = self._container(
            constructor_args=["${server.host}"],
            properties={"port": Value("${server.port}"), "debug": "${server.debug}"},
        )

        server = container.get_instance("server")

        self.assertEqual(server.host, "example.org")
        self.assertEqual(server.port, 8443)
        self.assertIs(server.debug, True)

    def test_constructor_kwargs_converted(self):
        container = self._container(constructor_kwargs={"host": "h", "workers": "${server.workers}"})

        self.assertEqual(container.get_instance("server").workers, 4)

    def test_conversion_failure_propagates(self):
        container = self._container(constructor_args=["h"], properties={"port": "${server.host}"})

        with self.assertRaises(TypeMismatchError):
            container.get_instance("server")

    def test_missing_placeholder(self):
        container = self._container(constructor_args=["${server.missing}"])

        with self.assertRaises(CreationError) as ctx:
            container.get_instance("server")

        self.assertIn("server.missing", str(ctx.exception))


@order(5)
class Five:
    pass


@order(-5)
class MinusFive:
    pass


class Plain:
    pass


class Ranked(Ordered):
    def __init__(self, rank: int):
        self.rank = rank

    def get_order(self) -> int:
        return self.rank


class TestOrdering(unittest.TestCase):
    """Test rank lookup and sorting."""

    def test_get_order(self):
        self.assertEqual(get_order(Five()), 5)
        self.assertEqual(get_order(Five), 5)
        self.assertEqual(get_order(Ranked(3)), 3)
        self.assertIsNone(get_order(Plain(), default=None))

    def test_sort_is_stable_for_unranked(self):
        first, second = Plain(), Plain()
        items = [first, Five(), second, MinusFive()]

        result = sort_by_order(items)

        self.assertEqual([type(i) for i in result], [MinusFive, Five, Plain, Plain])
        self.assertIs(result[2], first)
        self.assertIs(result[3], second)

    def test_unranked_default(self):
        self.assertEqual(get_order(Plain()), LOWEST_PRECEDENCE)

    def test_is_ordered(self):
        self.assertTrue(is_ordered(Five))
        self.assertTrue(is_ordered(Ranked(0)))
        self.assertFalse(is_ordered(Plain()))


if __name__ == "__main__":
    unittest.main()
