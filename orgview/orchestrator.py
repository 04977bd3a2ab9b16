"""Sequences generation, anchor lookup, and display for one preview run."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable
from urllib.parse import quote

from .anchors import AnchorResolver
from .config import PreviewConfig
from .debounce import ChangeDebouncer, TimerScheduler
from .document import SourceDocument
from .generators import GenerationError, Generator, GeneratorNotFound, GeneratorRegistry, infer_generator_name
from .viewer import ViewerSessionManager

logger = logging.getLogger(__name__)

FRAGMENT_SAFE_CHARS = "-._~!$&'()*+,;=:@/?"


def build_url(output_path: Path, fragment: str | None = None) -> str:
    url = Path(output_path).resolve().as_uri()
    if fragment:
        url += "#" + quote(fragment, safe=FRAGMENT_SAFE_CHARS)
    return url


class PreviewOrchestrator:
    """Entry point for save, idle-edit, and manual preview triggers."""

    def __init__(
        self,
        registry: GeneratorRegistry,
        viewer: ViewerSessionManager,
        config: PreviewConfig | None = None,
        *,
        anchors: AnchorResolver | None = None,
        scheduler: TimerScheduler | None = None,
        report: Callable[[str], None] | None = None,
    ) -> None:
        self.registry = registry
        self.viewer = viewer
        self.config = config or PreviewConfig()
        self.anchors = anchors or AnchorResolver()
        self.report = report or (lambda message: None)
        self.debouncer = ChangeDebouncer(self._on_idle, scheduler)

    def enable(self, document: SourceDocument) -> None:
        """Start live synchronization for ``document``."""
        if document.idle_delay is None:
            document.idle_delay = self.config.after_change_idle_delay
        self.debouncer.enable(document)

    def disable(self, document: SourceDocument) -> None:
        self.debouncer.disable(document)

    def on_change(self, document: SourceDocument) -> None:
        self.debouncer.on_change(document)

    def on_save(self, document: SourceDocument) -> str | None:
        self.debouncer.cancel(document)
        return self.run(document)

    def preview(self, document: SourceDocument, *, from_top: bool = False) -> str | None:
        self.debouncer.cancel(document)
        return self.run(document, use_fragment=not from_top)

    def _on_idle(self, document: SourceDocument) -> None:
        self.run(document)

    def generator_for(self, document: SourceDocument) -> tuple[str, Generator]:
        name = infer_generator_name(document, self.config)
        if name is None:
            return self.registry.identity.name, self.registry.identity
        try:
            return name, self.registry.resolve(name)
        except GeneratorNotFound as exc:
            message = f"{exc}; showing {document.path.name} as is"
            logger.warning("%s", message)
            self.report(message)
            return self.registry.identity.name, self.registry.identity

    def run(self, document: SourceDocument, use_fragment: bool = True) -> str | None:
        """Regenerate ``document`` and show it; returns the displayed URL."""
        name, generator = self.generator_for(document)
        try:
            output_path = generator.generate(document)
            if not Path(output_path).is_file():
                raise GenerationError(f"{Path(output_path).name} does not exist")
        except GenerationError as exc:
            logger.error("generator %s failed for %s: %s", name, document.path, exc)
            self.report(f"Preview generation failed ({name}): {exc}")
            return None
        except Exception as exc:
            # Registered callables, including ones returning something other than a path.
            logger.exception("generator %s crashed for %s", name, document.path)
            self.report(f"Preview generation failed ({name}): {exc}")
            return None

        fragment = self.anchors.resolve(document, output_path) if use_fragment else None
        url = build_url(output_path, fragment)
        self.viewer.set_active_source(document, presentation=generator.presentation)
        self.viewer.display(url)
        logger.debug("displayed %s via %s", url, name)
        return url
