"""
Test Fixtures

Common test classes used across test modules
"""

from typing import List

from trellis import DisposableComponent, InitializingComponent, SmartLifecycle


class Database:
    """Test database class"""

    def __init__(self):
        self.name = "TestDB"
        self.closed = False

    def close(self):
        self.closed = True


class CacheService:
    """Test cache service"""

    def __init__(self):
        self.cache = {}


class UserRepository:
    """Test repository with dependencies"""

    def __init__(self, db: Database, cache: CacheService):
        self.db = db
        self.cache = cache


class CounterService:
    """Service with mutable state for testing singleton behavior"""

    def __init__(self):
        self.counter = 0

    def increment(self):
        self.counter += 1
        return self.counter


class ServiceWithoutHint:
    """Service with missing type hint, autowired by parameter name"""

    def __init__(self, database):  # No type hint!
        self.database = database


class Level1:
    """First level of nested dependencies"""
    pass


class Level2:
    """Second level of nested dependencies"""

    def __init__(self, l1: Level1):
        self.l1 = l1


class Level3:
    """Third level of nested dependencies"""

    def __init__(self, l2: Level2):
        self.l2 = l2


class Level4:
    """Fourth level of nested dependencies"""

    def __init__(self, l3: Level3):
        self.l3 = l3


class Recorder:
    """Shared event log for ordering assertions"""

    def __init__(self):
        self.events: List[str] = []

    def record(self, event: str) -> None:
        self.events.append(event)


class TrackedComponent(InitializingComponent, DisposableComponent):
    """Component recording init and destroy callbacks into a class-level log"""

    log: List[str] = []

    def __init__(self):
        self.name = type(self).__name__

    def after_properties_set(self):
        self.log.append(f"init:{self.name}")

    def destroy(self):
        self.log.append(f"destroy:{self.name}")


class PhasedService(SmartLifecycle):
    """SmartLifecycle component recording start/stop into a shared list"""

    def __init__(self, label: str, phase: int, log: List[str], auto_startup: bool = True):
        self.label = label
        self.phase = phase
        self.log = log
        self.auto_startup = auto_startup
        self.running = False

    def start(self):
        self.running = True
        self.log.append(f"start:{self.label}")

    def stop(self):
        self.running = False
        self.log.append(f"stop:{self.label}")

    def is_running(self):
        return self.running

    def is_auto_startup(self):
        return self.auto_startup
