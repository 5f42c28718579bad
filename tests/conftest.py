"""
Test Configuration and Utilities

Common base classes and helper functions for Trellis tests
"""

import unittest
from typing import List, Optional, Type

from trellis import ContainerSettings, TrellisContainer, TrellisContext, TrellisModule


class TrellisTestCase(unittest.TestCase):
    """
    Base test case class for Trellis tests.

    Tracks every context created through ``new_context`` and closes it after
    the test, so a failing assertion never leaks running components.
    """

    def setUp(self):
        self._contexts: List[TrellisContext] = []

    def tearDown(self):
        for context in reversed(self._contexts):
            context.close()

    def new_context(self, *modules: TrellisModule, refresh: bool = True,
                    settings: Optional[ContainerSettings] = None, **kwargs) -> TrellisContext:
        context = TrellisContext(modules=list(modules), settings=settings, **kwargs)
        self._contexts.append(context)
        if refresh:
            context.refresh()
        return context


def create_simple_module(*service_classes: Type, lazy: bool = False) -> TrellisModule:
    """
    Create a simple module with singleton registrations for the given classes.

    Args:
        *service_classes: Classes to register, autowired by constructor annotations
        lazy: Module-level lazy default for the singletons

    Returns:
        A TrellisModule with the registrations

    Example:
        >>> module = create_simple_module(Database, CacheService)
        >>> context = TrellisContext(modules=[module])
    """
    module = TrellisModule(lazy=lazy)
    with module:
        for cls in service_classes:
            module.single[cls](cls)
    return module


def create_container(*service_classes: Type, settings: Optional[ContainerSettings] = None) -> TrellisContainer:
    """
    Create a bare container with the given classes registered as singletons.

    Example:
        >>> container = create_container(Database, UserRepository)
        >>> container.get_instance(UserRepository).db
    """
    container = TrellisContainer(settings=settings)
    container.load_modules([create_simple_module(*service_classes)])
    return container
