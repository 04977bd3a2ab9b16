"""Per-document coalescing of edit notifications into one delayed regeneration."""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from PySide6.QtCore import QObject, QTimer

from .document import SourceDocument

logger = logging.getLogger(__name__)


class TimerScheduler(Protocol):
    def start(self, delay_seconds: float, callback: Callable[[], None]): ...

    def cancel(self, handle) -> None: ...


class QtTimerScheduler:
    """Single-shot ``QTimer`` per pending callback, fired on the UI thread."""

    def __init__(self, parent: QObject | None = None) -> None:
        self._parent = parent
        self._timers: set[QTimer] = set()

    def start(self, delay_seconds: float, callback: Callable[[], None]) -> QTimer:
        timer = QTimer(self._parent)
        timer.setSingleShot(True)
        timer.setInterval(max(0, int(round(delay_seconds * 1000))))

        def on_timeout(timer=timer) -> None:
            self._timers.discard(timer)
            timer.deleteLater()
            callback()

        timer.timeout.connect(on_timeout)
        self._timers.add(timer)
        timer.start()
        return timer

    def cancel(self, handle: QTimer) -> None:
        if handle not in self._timers:
            return
        self._timers.discard(handle)
        handle.stop()
        handle.deleteLater()


class ChangeDebouncer:
    """Owns at most one pending timer per document; every new edit restarts it."""

    def __init__(self, fire: Callable[[SourceDocument], None], scheduler: TimerScheduler | None = None) -> None:
        self.fire = fire
        self.scheduler = scheduler if scheduler is not None else QtTimerScheduler()
        self._pending: dict[str, object] = {}

    def is_pending(self, document: SourceDocument) -> bool:
        return document.key in self._pending

    def on_change(self, document: SourceDocument) -> None:
        if not document.debounce_enabled or document.idle_delay is None:
            return
        key = document.key
        self.cancel(document)
        handle_box: list[object] = []

        def on_idle() -> None:
            # Ignore a late fire from a timer that has since been replaced.
            if not handle_box or self._pending.get(key) is not handle_box[0]:
                return
            del self._pending[key]
            logger.debug("idle delay elapsed for %s", document.path)
            self.fire(document)

        handle = self.scheduler.start(document.idle_delay, on_idle)
        handle_box.append(handle)
        self._pending[key] = handle

    def cancel(self, document: SourceDocument) -> None:
        handle = self._pending.pop(document.key, None)
        if handle is not None:
            self.scheduler.cancel(handle)

    def disable(self, document: SourceDocument) -> None:
        document.debounce_enabled = False
        self.cancel(document)

    def enable(self, document: SourceDocument) -> None:
        document.debounce_enabled = True

    def cancel_all(self) -> None:
        for handle in self._pending.values():
            self.scheduler.cancel(handle)
        self._pending.clear()
