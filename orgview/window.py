"""Editor + live preview host window."""

from __future__ import annotations

from pathlib import Path

from PySide6.QtCore import Qt, QTimer
from PySide6.QtGui import QAction, QFontDatabase, QIcon
from PySide6.QtWidgets import QMainWindow, QMessageBox, QPlainTextEdit, QSplitter, QVBoxLayout, QWidget

from .config import PreviewConfig
from .debounce import QtTimerScheduler
from .document import SourceDocument
from .generators import default_registry
from .orchestrator import PreviewOrchestrator
from .qtview import WebViewBackend
from .viewer import ViewerSessionManager


class OrgViewWindow(QMainWindow):
    STATUS_TIMEOUT_MS = 5000

    def __init__(self, path: Path, config: PreviewConfig, app_icon: QIcon | None = None):
        super().__init__()
        self.config = config
        self._loading_text = False
        # Signature of the file on disk so saves from other editors are picked
        # up as save events.
        self._disk_signature: tuple[int, int] | None = None

        self.editor = QPlainTextEdit()
        self.editor.setFont(QFontDatabase.systemFont(QFontDatabase.SystemFont.FixedFont))
        self.editor.setLineWrapMode(QPlainTextEdit.LineWrapMode.NoWrap)

        self.preview_container = QWidget()
        preview_layout = QVBoxLayout(self.preview_container)
        preview_layout.setContentsMargins(0, 0, 0, 0)
        preview_layout.setSpacing(0)

        self.view_backend = WebViewBackend(self.preview_container)
        self.viewer = ViewerSessionManager(self.view_backend, config.preview_buffer_identity)
        self.orchestrator = PreviewOrchestrator(
            default_registry(config),
            self.viewer,
            config,
            scheduler=QtTimerScheduler(self),
            report=self._report,
        )
        self.document = SourceDocument(
            path,
            idle_delay=config.after_change_idle_delay,
            text_provider=self.editor.toPlainText,
            focus_editor=self._focus_editor,
        )

        self.splitter = QSplitter(Qt.Horizontal)
        self.splitter.addWidget(self.editor)
        self.splitter.addWidget(self.preview_container)
        self.splitter.setChildrenCollapsible(False)
        self.splitter.setStretchFactor(0, 1)
        self.splitter.setStretchFactor(1, 1)
        self.setCentralWidget(self.splitter)

        if app_icon is not None:
            self.setWindowIcon(app_icon)
        self.resize(1540, 980)
        self.statusBar().showMessage("Ready")

        self._load_text_from_disk()
        self.editor.textChanged.connect(self._on_text_changed)
        self.editor.cursorPositionChanged.connect(self._on_cursor_moved)
        self.editor.document().modificationChanged.connect(self._update_window_title)

        self._file_change_watch_timer = QTimer(self)
        self._file_change_watch_timer.setInterval(1200)
        self._file_change_watch_timer.timeout.connect(self._on_file_change_watch_tick)
        self._file_change_watch_timer.start()

        self._add_shortcuts()
        self.orchestrator.enable(self.document)
        self._update_window_title()
        QTimer.singleShot(0, self._preview_at_cursor)

    def _add_shortcuts(self) -> None:
        """Register window-level keyboard shortcuts."""
        bindings = [
            ("Save", "Ctrl+S", self._save),
            ("Preview at cursor", "F5", self._preview_at_cursor),
            ("Preview from top", "Shift+F5", self._preview_from_top),
            ("Toggle live preview", "Ctrl+L", self._toggle_live_preview),
            ("Close preview", "Ctrl+W", self._close_preview),
        ]
        for label, shortcut, slot in bindings:
            action = QAction(label, self)
            action.setShortcut(shortcut)
            action.triggered.connect(slot)
            self.addAction(action)

    def _report(self, message: str) -> None:
        self.statusBar().showMessage(message, self.STATUS_TIMEOUT_MS)

    def _focus_editor(self) -> None:
        self.raise_()
        self.activateWindow()
        self.editor.setFocus(Qt.FocusReason.OtherFocusReason)

    def _update_window_title(self, *_args) -> None:
        marker = "*" if self.editor.document().isModified() else ""
        self.setWindowTitle(f"orgview - {self.document.path.name}{marker}")

    def _read_disk_signature(self) -> tuple[int, int] | None:
        try:
            stat = self.document.path.resolve().stat()
        except OSError:
            return None
        return int(stat.st_mtime_ns), int(stat.st_size)

    def _load_text_from_disk(self) -> bool:
        try:
            text = self.document.path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            self._report(f"Could not read {self.document.path.name}: {exc}")
            return False
        self._loading_text = True
        try:
            self.editor.setPlainText(text)
        finally:
            self._loading_text = False
        self.editor.document().setModified(False)
        self._disk_signature = self._read_disk_signature()
        return True

    def _on_text_changed(self) -> None:
        if self._loading_text:
            return
        self.orchestrator.on_change(self.document)

    def _on_cursor_moved(self) -> None:
        self.document.cursor_line = self.editor.textCursor().blockNumber()

    def _save(self, _checked: bool = False) -> None:
        try:
            self.document.path.write_text(self.editor.toPlainText(), encoding="utf-8")
        except OSError as exc:
            QMessageBox.critical(self, "Save failed", f"Could not save {self.document.path}:\n\n{exc}")
            return
        self.editor.document().setModified(False)
        self._disk_signature = self._read_disk_signature()
        self.statusBar().showMessage(f"Saved {self.document.path.name}", self.STATUS_TIMEOUT_MS)
        self.orchestrator.on_save(self.document)

    def _preview_at_cursor(self, _checked: bool = False) -> None:
        self.orchestrator.preview(self.document)

    def _preview_from_top(self, _checked: bool = False) -> None:
        self.orchestrator.preview(self.document, from_top=True)

    def _toggle_live_preview(self, _checked: bool = False) -> None:
        if self.document.debounce_enabled:
            self.orchestrator.disable(self.document)
            self._report("Live preview off: regenerating on save only")
            return
        self.orchestrator.enable(self.document)
        if self.document.idle_delay is None:
            self._report("Live preview needs afterChangeIdleDelay; regenerating on save only")
        else:
            self._report(f"Live preview on ({self.document.idle_delay:g}s after typing stops)")

    def _close_preview(self, _checked: bool = False) -> None:
        session = self.viewer.live_session()
        if session is None:
            return
        self.view_backend.close_session(session.handle)

    def _on_file_change_watch_tick(self) -> None:
        """Treat an on-disk change made by another program as a save."""
        current_sig = self._read_disk_signature()
        if current_sig is None:
            # File may be temporarily inaccessible while external tools save.
            return
        if self._disk_signature is None:
            self._disk_signature = current_sig
            return
        if current_sig == self._disk_signature:
            return

        # Update baseline first so repeated timer ticks during one save do not
        # trigger duplicate refresh cycles.
        self._disk_signature = current_sig
        if self.editor.document().isModified():
            self._report(f"{self.document.path.name} changed on disk; keeping unsaved edits")
            return
        cursor_line = self.document.cursor_line
        if not self._load_text_from_disk():
            return
        block = self.editor.document().findBlockByNumber(min(cursor_line, self.editor.blockCount() - 1))
        cursor = self.editor.textCursor()
        cursor.setPosition(block.position())
        self.editor.setTextCursor(cursor)
        self.orchestrator.on_save(self.document)

    def closeEvent(self, event) -> None:  # noqa: N802
        self.orchestrator.debouncer.cancel_all()
        super().closeEvent(event)
