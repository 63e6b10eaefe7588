"""
Shared pytest fixtures and configuration for all tests.
"""
import os
from typing import Callable, Generator

import pytest
from hypothesis import settings, Verbosity, Phase

from cache.memory_engine import MemoryCacheEngine
from session.listeners import SessionAttributeListener, SessionLifecycleListener

# Configure Hypothesis profiles for different environments
# Default profile: balanced for local development
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,
    print_blob=True,  # Print failing examples for debugging
)

# CI profile: more thorough testing for continuous integration
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,  # Reproducible results in CI
)

# Debug profile: minimal examples for quick debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],  # Skip shrinking for speed
)

# Fast profile: quick smoke tests
settings.register_profile(
    "fast",
    max_examples=20,
    verbosity=Verbosity.normal,
    deadline=None,
)

# Load profile from environment variable HYPOTHESIS_PROFILE, default to "default"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


class FakeClock:
    """Manually advanced clock reporting epoch milliseconds."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def seconds(self) -> float:
        """The same instant in seconds, for cache engine expiry."""
        return self.now_ms / 1000.0

    def advance(self, seconds: float) -> None:
        self.now_ms += int(seconds * 1000)


class RecordingListener(SessionLifecycleListener, SessionAttributeListener):
    """Listener recording every notification as (event, session id, name, value)."""

    def __init__(self, events: list = None):
        self.events = events if events is not None else []

    def session_created(self, event):
        self.events.append(("created", event.session.id, None, None))

    def session_destroyed(self, event):
        self.events.append(("destroyed", event.session.id, None, None))

    def attribute_added(self, event):
        self.events.append(("added", event.session.id, event.name, event.value))

    def attribute_removed(self, event):
        self.events.append(("removed", event.session.id, event.name, event.value))

    def attribute_replaced(self, event):
        self.events.append(("replaced", event.session.id, event.name, event.value))

    def names(self) -> list:
        return [event[0] for event in self.events]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_cache(clock: FakeClock) -> Generator[MemoryCacheEngine, None, None]:
    """An initialized in-memory engine sharing the fake clock."""
    engine = MemoryCacheEngine(clock=clock.seconds)
    engine.init()
    yield engine
    engine.stop()


@pytest.fixture
def recording_listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def id_factory() -> Callable[[], str]:
    """Deterministic session ids: sid-1, sid-2, ..."""
    counter = iter(range(1, 10_000))
    return lambda: f"sid-{next(counter)}"
