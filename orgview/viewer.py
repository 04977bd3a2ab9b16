"""Lifecycle of the single shared preview view and its navigation-assist keys."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable, NamedTuple, Protocol
from urllib.parse import urldefrag

from .config import DEFAULT_PREVIEW_IDENTITY
from .document import SourceDocument

logger = logging.getLogger(__name__)

BLANK_URL = "about:blank"


class NavigationKey(NamedTuple):
    action: str
    key: str
    code: int


# Key codes understood by reveal.js' own keyboard handler.
NAVIGATION_KEYS: tuple[NavigationKey, ...] = (
    NavigationKey("next", "N", 78),
    NavigationKey("previous", "P", 80),
    NavigationKey("left", "H", 72),
    NavigationKey("right", "L", 76),
    NavigationKey("up", "K", 75),
    NavigationKey("down", "J", 74),
    NavigationKey("first", "Home", 36),
    NavigationKey("last", "End", 35),
    NavigationKey("pause", "B", 66),
    NavigationKey("fullscreen", "F", 70),
    NavigationKey("overview", "O", 79),
)


def trigger_key_script(code: int) -> str:
    return (
        "(() => {\n"
        "  if (window.Reveal && typeof window.Reveal.triggerKey === 'function') {\n"
        f"    window.Reveal.triggerKey({int(code)});\n"
        "  }\n"
        "})();\n"
    )


def needs_forced_reload(current_url: str, target_url: str) -> bool:
    """Same page with a fragment on either side: the view fires no load signal."""
    current_base, current_fragment = urldefrag(current_url)
    target_base, target_fragment = urldefrag(target_url)
    return current_base == target_base and bool(current_fragment or target_fragment)


class ViewWidget(Protocol):
    def new_session(self, url: str, identity: str): ...

    def navigate(self, handle, url: str) -> None: ...

    def on_load_complete(self, handle, callback: Callable[[bool], None]) -> None: ...

    def execute_script(self, handle, script: str) -> None: ...

    def is_alive(self, handle) -> bool: ...

    def bind_key(self, handle, key: str, callback: Callable[[], None]) -> None: ...

    def unbind_key(self, handle, key: str) -> None: ...

    def present(self, handle) -> None: ...


@dataclass(eq=False)
class PreviewSession:
    """The process-wide active preview: one live view under the shared identity."""

    identity: str
    handle: object
    url: str
    navigation_assist: bool = False
    source: SourceDocument | None = None
    presentation: bool = False


class ViewerSessionManager:
    def __init__(self, widget: ViewWidget, identity: str = DEFAULT_PREVIEW_IDENTITY) -> None:
        self.widget = widget
        self.identity = identity
        self.active: PreviewSession | None = None
        self._source: SourceDocument | None = None
        self._presentation = False

    def set_active_source(self, document: SourceDocument, *, presentation: bool = False) -> None:
        """Record which document (and generator style) drives the next display."""
        self._source = document
        self._presentation = presentation
        if self.active is not None:
            self.active.source = document
            self.active.presentation = presentation

    def live_session(self) -> PreviewSession | None:
        session = self.active
        if session is None:
            return None
        try:
            alive = bool(self.widget.is_alive(session.handle))
        except RuntimeError:
            # Qt raises RuntimeError for wrappers whose C++ object is gone.
            alive = False
        if not alive:
            logger.debug("preview view %s is gone; a new one will be created", session.identity)
            self.active = None
            return None
        return session

    def display(self, url: str) -> PreviewSession:
        """Show ``url`` in the shared view, creating the view only when none is live."""
        session = self.live_session()
        if session is None:
            handle = self.widget.new_session(url, self.identity)
            session = PreviewSession(
                identity=self.identity,
                handle=handle,
                url=url,
                source=self._source,
                presentation=self._presentation,
            )
            self.active = session
            self.widget.on_load_complete(handle, partial(self._on_load_complete, session))
            return session

        if needs_forced_reload(session.url, url):
            self.widget.navigate(session.handle, BLANK_URL)
        self.widget.navigate(session.handle, url)
        session.url = url
        return session

    def _on_load_complete(self, session: PreviewSession, ok: bool) -> None:
        if not ok:
            logger.debug("preview load did not complete for %s", session.url)
            return
        if session is not self.active:
            return
        document = session.source
        if document is not None:
            document.bring_to_foreground()
        self.widget.present(session.handle)
        self.toggle_navigation_assist(session, session.presentation)
        if document is not None:
            document.bring_to_foreground()

    def toggle_navigation_assist(self, session: PreviewSession, on: bool) -> None:
        if on == session.navigation_assist:
            return
        for nav_key in NAVIGATION_KEYS:
            if on:
                self.widget.bind_key(session.handle, nav_key.key, partial(self._forward_key, session, nav_key))
            else:
                self.widget.unbind_key(session.handle, nav_key.key)
        session.navigation_assist = on

    def _forward_key(self, session: PreviewSession, nav_key: NavigationKey) -> None:
        if self.live_session() is not session:
            return
        self.widget.execute_script(session.handle, trigger_key_script(nav_key.code))
