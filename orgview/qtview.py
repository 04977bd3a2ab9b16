"""QtWebEngine implementation of the preview view widget."""

from __future__ import annotations

from typing import Callable

from PySide6.QtCore import Qt, QUrl
from PySide6.QtGui import QKeySequence, QShortcut
from PySide6.QtWebEngineCore import QWebEngineSettings
from PySide6.QtWebEngineWidgets import QWebEngineView
from PySide6.QtWidgets import QVBoxLayout, QWidget


class WebViewBackend:
    """Creates preview views inside ``container`` and tracks which are still alive."""

    def __init__(self, container: QWidget) -> None:
        self._container = container
        layout = container.layout()
        if layout is None:
            layout = QVBoxLayout(container)
            layout.setContentsMargins(0, 0, 0, 0)
            layout.setSpacing(0)
        self._layout = layout
        self._live: set[int] = set()
        self._shortcuts: dict[tuple[int, str], QShortcut] = {}

    def new_session(self, url: str, identity: str) -> QWebEngineView:
        view = QWebEngineView(self._container)
        view.setObjectName(identity)
        # Generated pages are local HTML that may pull CSS/JS (reveal.js,
        # MathJax) from a CDN and sibling files from disk.
        settings = view.settings()
        settings.setAttribute(QWebEngineSettings.WebAttribute.LocalContentCanAccessRemoteUrls, True)
        settings.setAttribute(QWebEngineSettings.WebAttribute.LocalContentCanAccessFileUrls, True)
        self._layout.addWidget(view, 1)
        view_id = id(view)
        self._live.add(view_id)
        view.destroyed.connect(lambda _obj=None, view_id=view_id: self._forget(view_id))
        view.setUrl(QUrl(url))
        return view

    def _forget(self, view_id: int) -> None:
        self._live.discard(view_id)
        for key in [key for key in self._shortcuts if key[0] == view_id]:
            self._shortcuts.pop(key, None)

    def navigate(self, handle: QWebEngineView, url: str) -> None:
        handle.setUrl(QUrl(url))

    def on_load_complete(self, handle: QWebEngineView, callback: Callable[[bool], None]) -> None:
        handle.loadFinished.connect(callback)

    def execute_script(self, handle: QWebEngineView, script: str) -> None:
        # Mutates page state only (no returned data consumed).
        handle.page().runJavaScript(script)

    def is_alive(self, handle: QWebEngineView) -> bool:
        return id(handle) in self._live

    def bind_key(self, handle: QWebEngineView, key: str, callback: Callable[[], None]) -> None:
        self.unbind_key(handle, key)
        shortcut = QShortcut(QKeySequence(key), handle)
        # Only while the preview (or the page widget inside it) has focus.
        shortcut.setContext(Qt.ShortcutContext.WidgetWithChildrenShortcut)
        shortcut.activated.connect(callback)
        self._shortcuts[(id(handle), key)] = shortcut

    def unbind_key(self, handle: QWebEngineView, key: str) -> None:
        shortcut = self._shortcuts.pop((id(handle), key), None)
        if shortcut is None:
            return
        shortcut.setEnabled(False)
        shortcut.deleteLater()

    def present(self, handle: QWebEngineView) -> None:
        self._container.show()
        handle.show()
        handle.raise_()

    def close_session(self, handle: QWebEngineView) -> None:
        """Close a view; the session manager sees it as dead from now on."""
        if not self.is_alive(handle):
            return
        self._forget(id(handle))
        self._layout.removeWidget(handle)
        handle.close()
        handle.deleteLater()
