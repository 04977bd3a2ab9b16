"""Keep one live rendered preview of an outline document in sync with its edits."""

from .anchors import AnchorResolver, find_anchor
from .config import PreviewConfig, load_config
from .debounce import ChangeDebouncer
from .document import SourceDocument
from .generators import GenerationError, Generator, GeneratorNotFound, GeneratorRegistry, default_registry
from .orchestrator import PreviewOrchestrator
from .viewer import NAVIGATION_KEYS, PreviewSession, ViewerSessionManager

__version__ = "0.1.0"

__all__ = [
    "AnchorResolver",
    "ChangeDebouncer",
    "GenerationError",
    "Generator",
    "GeneratorNotFound",
    "GeneratorRegistry",
    "NAVIGATION_KEYS",
    "PreviewConfig",
    "PreviewOrchestrator",
    "PreviewSession",
    "SourceDocument",
    "ViewerSessionManager",
    "default_registry",
    "find_anchor",
    "load_config",
]
