"""User configuration for orgview (``~/.orgview.cfg``, JSON)."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field, fields, replace
from pathlib import Path

CONFIG_FILE_NAME = ".orgview.cfg"
DEFAULT_PREVIEW_IDENTITY = "*orgview*"
DEFAULT_REVEALJS_URL = "https://cdn.jsdelivr.net/npm/reveal.js@5"


def _default_extension_generators() -> dict[str, str]:
    return {
        ".org": "html",
        ".md": "markdown",
        ".markdown": "markdown",
        ".html": "identity",
        ".htm": "identity",
    }


def config_file_path() -> Path:
    return Path.home() / CONFIG_FILE_NAME


def normalize_idle_delay(value) -> float | None:
    """Map unset, non-numeric, or non-positive delays to ``None`` (disabled)."""
    if value is None or isinstance(value, bool):
        return None
    try:
        delay = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(delay) or delay <= 0:
        return None
    return delay


@dataclass(frozen=True)
class PreviewConfig:
    generator_name: str | None = None
    after_change_idle_delay: float | None = None
    preview_buffer_identity: str = DEFAULT_PREVIEW_IDENTITY
    extension_generators: dict[str, str] = field(default_factory=_default_extension_generators)
    pandoc_command: str = "pandoc"
    emacs_command: str = "emacs"
    revealjs_url: str = DEFAULT_REVEALJS_URL
    generator_timeout: float = 60.0

    def with_overrides(self, **values) -> PreviewConfig:
        """Return a copy with every non-``None`` override applied."""
        known = {f.name for f in fields(self)}
        changes = {key: value for key, value in values.items() if key in known and value is not None}
        if "after_change_idle_delay" in changes:
            changes["after_change_idle_delay"] = normalize_idle_delay(changes["after_change_idle_delay"])
        return replace(self, **changes)


def _coerce_options(payload: dict) -> dict:
    options: dict = {}

    name = payload.get("generatorName")
    if isinstance(name, str) and name.strip():
        options["generator_name"] = name.strip()

    options["after_change_idle_delay"] = normalize_idle_delay(payload.get("afterChangeIdleDelay"))

    identity = payload.get("previewBufferIdentity")
    if isinstance(identity, str) and identity.strip():
        options["preview_buffer_identity"] = identity.strip()

    mapping = payload.get("extensionGenerators")
    if isinstance(mapping, dict):
        merged = _default_extension_generators()
        for suffix, generator in mapping.items():
            if isinstance(suffix, str) and isinstance(generator, str) and suffix:
                key = suffix.lower() if suffix.startswith(".") else f".{suffix.lower()}"
                merged[key] = generator
        options["extension_generators"] = merged

    for json_key, attr in (
        ("pandocCommand", "pandoc_command"),
        ("emacsCommand", "emacs_command"),
        ("revealjsUrl", "revealjs_url"),
    ):
        value = payload.get(json_key)
        if isinstance(value, str) and value.strip():
            options[attr] = value.strip()

    timeout = payload.get("generatorTimeout")
    if isinstance(timeout, (int, float)) and not isinstance(timeout, bool) and timeout > 0:
        options["generator_timeout"] = float(timeout)

    return options


def load_config(path: Path | None = None) -> PreviewConfig:
    """Load options from the JSON config file, falling back to defaults."""
    cfg_path = path if path is not None else config_file_path()
    try:
        raw = cfg_path.read_text(encoding="utf-8")
        payload = json.loads(raw) if raw.strip() else {}
    except Exception:
        # Missing file, access denied, or malformed JSON should not block previewing.
        return PreviewConfig()
    if not isinstance(payload, dict):
        return PreviewConfig()
    return PreviewConfig(**_coerce_options(payload))
