"""
Shared fixtures: in-memory stand-ins for the embedded view and the UI timer.

The core never touches Qt directly, so these fakes let every synchronization
rule be exercised without a display or an event loop.
"""

from typing import Callable, Dict, List, Optional

import pytest

from orgview.config import PreviewConfig
from orgview.document import SourceDocument
from orgview.generators import GeneratorRegistry
from orgview.orchestrator import PreviewOrchestrator
from orgview.viewer import ViewerSessionManager


class FakeTimer:
    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False


class FakeScheduler:
    """Manual clock; timers only fire when a test calls ``advance``."""

    def __init__(self):
        self.now = 0.0
        self.timers: List[FakeTimer] = []

    def start(self, delay_seconds: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.now + delay_seconds, callback)
        self.timers.append(timer)
        return timer

    def cancel(self, handle: FakeTimer) -> None:
        handle.cancelled = True

    def active(self) -> List[FakeTimer]:
        return [timer for timer in self.timers if not timer.cancelled and not timer.fired]

    def advance(self, seconds: float) -> None:
        self.now += seconds
        for timer in sorted(self.active(), key=lambda t: t.due):
            if timer.due <= self.now and not timer.cancelled:
                timer.fired = True
                timer.callback()


class FakeView:
    def __init__(self, number: int):
        self.number = number

    def __repr__(self):
        return f"FakeView({self.number})"


class FakeViewWidget:
    """Records every call the session manager makes against the view."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.alive: set = set()
        self.load_callbacks: Dict[int, List[Callable[[bool], None]]] = {}
        self.bindings: Dict[int, Dict[str, Callable[[], None]]] = {}
        self.scripts: List[tuple] = []
        self.events: List[str] = []
        self._created = 0

    def new_session(self, url: str, identity: str) -> FakeView:
        self._created += 1
        view = FakeView(self._created)
        self.alive.add(id(view))
        self.calls.append(("new_session", view, url, identity))
        return view

    def navigate(self, handle, url: str) -> None:
        self.calls.append(("navigate", handle, url))

    def on_load_complete(self, handle, callback) -> None:
        self.load_callbacks.setdefault(id(handle), []).append(callback)

    def execute_script(self, handle, script: str) -> None:
        self.scripts.append((handle, script))

    def is_alive(self, handle) -> bool:
        return id(handle) in self.alive

    def bind_key(self, handle, key: str, callback) -> None:
        self.bindings.setdefault(id(handle), {})[key] = callback

    def unbind_key(self, handle, key: str) -> None:
        self.bindings.get(id(handle), {}).pop(key, None)

    def present(self, handle) -> None:
        self.events.append("present")

    # Test helpers -------------------------------------------------------

    def finish_load(self, handle, ok: bool = True) -> None:
        for callback in self.load_callbacks.get(id(handle), []):
            callback(ok)

    def kill(self, handle) -> None:
        self.alive.discard(id(handle))

    def calls_named(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def view_widget():
    return FakeViewWidget()


@pytest.fixture
def viewer(view_widget):
    return ViewerSessionManager(view_widget, "*orgview*")


@pytest.fixture
def registry():
    return GeneratorRegistry()


@pytest.fixture
def reports():
    return []


@pytest.fixture
def make_orchestrator(registry, viewer, scheduler, reports):
    def factory(config: Optional[PreviewConfig] = None) -> PreviewOrchestrator:
        return PreviewOrchestrator(
            registry,
            viewer,
            config or PreviewConfig(),
            scheduler=scheduler,
            report=reports.append,
        )

    return factory


@pytest.fixture
def make_document(tmp_path):
    def factory(name: str, text: str, **kwargs) -> SourceDocument:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return SourceDocument(path, **kwargs)

    return factory
