"""The editable source document a preview is bound to."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

MARKDOWN_SUFFIXES = {".md", ".markdown"}


class SourceDocument:
    """One author-editable outline document, identified by its resolved path."""

    def __init__(
        self,
        path: Path,
        *,
        generator_name: str | None = None,
        idle_delay: float | None = None,
        text_provider: Callable[[], str] | None = None,
        focus_editor: Callable[[], None] | None = None,
    ) -> None:
        self.path = Path(path).expanduser()
        self.generator_name = generator_name
        self.idle_delay = idle_delay
        self.debounce_enabled = False
        self.cursor_line = 0
        self.text_provider = text_provider
        self.focus_editor = focus_editor

    def __repr__(self) -> str:
        return f"SourceDocument({str(self.path)!r})"

    @property
    def key(self) -> str:
        try:
            return str(self.path.resolve())
        except Exception:
            return str(self.path)

    @property
    def kind(self) -> str:
        return "markdown" if self.path.suffix.lower() in MARKDOWN_SUFFIXES else "org"

    def text(self) -> str:
        """Current buffer text, or the file on disk when no editor is attached."""
        if self.text_provider is not None:
            return self.text_provider()
        return self.path.read_text(encoding="utf-8", errors="replace")

    def bring_to_foreground(self) -> None:
        if self.focus_editor is not None:
            self.focus_editor()
