"""Named HTML generators and the registry that dispatches to them."""

from __future__ import annotations

import html
import json
import logging
import os
import re
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator

from markdown_it import MarkdownIt
from mdit_py_plugins.dollarmath import dollarmath_plugin

from .config import PreviewConfig
from .document import SourceDocument
from .structure import inline_plain_text

logger = logging.getLogger(__name__)

IDENTITY = "identity"
MATHJAX_SCRIPT_SOURCES = [
    "https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-svg.js",
    "https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js",
]


class GenerationError(RuntimeError):
    """The generator did not produce a usable output document."""


class GeneratorNotFound(LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(f"no generator for {name}")
        self.name = name


PREVIEW_SUFFIX = ".preview.html"


def output_path_for(document: SourceDocument) -> Path:
    """Sibling HTML file for the generated preview, never the source itself."""
    output_path = document.path.with_suffix(".html")
    if document.path.suffix.lower() == ".html" or output_path.resolve() == document.path.resolve():
        output_path = document.path.with_name(document.path.stem + PREVIEW_SUFFIX)
    return output_path


def _summarize_stderr(stderr_text: str) -> str:
    """Keep the first few meaningful stderr lines of a failed tool run."""
    raw = (stderr_text or "").replace("\r\n", "\n").replace("\r", "\n")
    lines = [line.strip() for line in raw.split("\n") if line.strip()]
    if not lines:
        return "unknown error"
    return "\n".join(lines[:8])


@contextmanager
def _atomic_output(target: Path) -> Iterator[Path]:
    """Yield a scratch sibling of ``target`` that replaces it only on success."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.stem}.", suffix=target.suffix, dir=target.parent)
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        yield tmp_path
        if not tmp_path.is_file() or tmp_path.stat().st_size == 0:
            raise GenerationError(f"no output written for {target.name}")
        os.replace(tmp_path, target)
    finally:
        tmp_path.unlink(missing_ok=True)


def _run_tool(command: list[str], *, input_text: str | None, cwd: Path, timeout: float) -> None:
    tool = Path(command[0]).name
    logger.debug("running %s", " ".join(command))
    try:
        result = subprocess.run(
            command,
            input=input_text,
            text=True,
            capture_output=True,
            check=False,
            timeout=timeout,
            cwd=str(cwd),
        )
    except FileNotFoundError:
        raise GenerationError(f"{tool} not found in PATH") from None
    except subprocess.TimeoutExpired:
        raise GenerationError(f"{tool} timed out after {timeout:g}s") from None
    except OSError as exc:
        raise GenerationError(f"{tool} failed: {exc}") from exc

    if result.returncode != 0:
        raise GenerationError(f"{tool} failed: {_summarize_stderr(result.stderr or '')}")


class Generator:
    """Produces an HTML document for a source document and returns its path."""

    name = ""
    presentation = False

    def generate(self, document: SourceDocument) -> Path:
        raise NotImplementedError


class IdentityGenerator(Generator):
    """The source already is the output (plain HTML files)."""

    name = IDENTITY

    def generate(self, document: SourceDocument) -> Path:
        return document.path


class FunctionGenerator(Generator):
    def __init__(self, name: str, operation: Callable[[SourceDocument], Path], *, presentation: bool = False) -> None:
        self.name = name
        self.operation = operation
        self.presentation = presentation

    def generate(self, document: SourceDocument) -> Path:
        return Path(self.operation(document))


class MarkdownGenerator(Generator):
    """Render markdown in-process, wrapping every heading in an identified section."""

    name = "markdown"

    def __init__(self) -> None:
        self._md = MarkdownIt(
            "commonmark",
            {"html": True, "typographer": True},
        ).enable("table").enable("strikethrough")
        # Parse $...$ / $$...$$ as dedicated math tokens before emphasis rules
        # run, preventing TeX corruption.
        self._md.use(dollarmath_plugin)

        default_render_token = self._md.renderer.renderToken

        def custom_math_inline(tokens, idx, options, env):
            return f"${html.escape(tokens[idx].content)}$"

        def custom_math_block(tokens, idx, options, env):
            math_body = (tokens[idx].content or "").strip("\n")
            return f'<div class="orgview-math-block">$$\n{html.escape(math_body)}\n$$</div>\n'

        def custom_heading_open(tokens, idx, options, env):
            token = tokens[idx]
            level = int(token.tag[1:])
            inline = tokens[idx + 1] if idx + 1 < len(tokens) else None
            open_levels: list[int] = env.setdefault("open_sections", [])
            closing = ""
            while open_levels and open_levels[-1] >= level:
                open_levels.pop()
                closing += "</section>\n"
            open_levels.append(level)
            section_id = self._unique_slug(inline_plain_text(inline), env.setdefault("used_ids", set()))
            opening = f'<section id="{html.escape(section_id)}" class="level{level}">\n'
            return closing + opening + default_render_token(tokens, idx, options, env)

        self._md.renderer.rules["math_inline"] = custom_math_inline
        self._md.renderer.rules["math_block"] = custom_math_block
        self._md.renderer.rules["heading_open"] = custom_heading_open

    @staticmethod
    def _unique_slug(title: str, used: set[str]) -> str:
        base = re.sub(r"[^\w\- ]+", "", title.casefold()).strip()
        base = re.sub(r"\s+", "-", base) or "section"
        slug = base
        counter = 1
        while slug in used:
            slug = f"{base}-{counter}"
            counter += 1
        used.add(slug)
        return slug

    def render_document(self, markdown_text: str, title: str) -> str:
        env: dict = {"open_sections": [], "used_ids": set()}
        body = self._md.render(markdown_text, env)
        body += "</section>\n" * len(env["open_sections"])
        escaped_title = html.escape(title)
        mathjax_sources_json = json.dumps(MATHJAX_SCRIPT_SOURCES)
        return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8"/>
  <meta name="viewport" content="width=device-width, initial-scale=1"/>
  <title>{escaped_title}</title>
  <style>
    :root {{
      color-scheme: light dark;
      --fg: #1f2937;
      --bg: #f9fafb;
      --code-bg: #e5e7eb;
      --border: #d1d5db;
      --link: #0b57d0;
    }}
    @media (prefers-color-scheme: dark) {{
      :root {{
        --fg: #e5e7eb;
        --bg: #111827;
        --code-bg: #1f2937;
        --border: #374151;
        --link: #8ab4f8;
      }}
    }}
    html, body {{
      margin: 0;
      padding: 0;
      background: var(--bg);
      color: var(--fg);
      font-family: "Noto Sans", "DejaVu Sans", sans-serif;
      line-height: 1.55;
      font-size: 16px;
    }}
    main {{
      max-width: 980px;
      margin: 0 auto;
      padding: 1.1rem 1.4rem 4rem 1.4rem;
    }}
    a {{
      color: var(--link);
    }}
    pre, code {{
      font-family: "Noto Sans Mono", "DejaVu Sans Mono", monospace;
    }}
    code {{
      background: var(--code-bg);
      border-radius: 4px;
      padding: 0.1rem 0.35rem;
    }}
    pre {{
      background: var(--code-bg);
      border: 1px solid var(--border);
      border-radius: 6px;
      padding: 0.8rem;
      overflow: auto;
    }}
    pre > code {{
      background: transparent;
      padding: 0;
    }}
    table {{
      border-collapse: collapse;
    }}
    th, td {{
      border: 1px solid var(--border);
      padding: 0.4rem 0.6rem;
    }}
  </style>
  <script>
    (() => {{
      if (!document.documentElement.innerHTML.includes("$")) {{
        return;
      }}
      window.MathJax = {{ tex: {{ inlineMath: [["$", "$"]], displayMath: [["$$", "$$"]] }} }};
      const sources = {mathjax_sources_json};
      const tryLoad = (index) => {{
        if (index >= sources.length) {{
          return;
        }}
        const script = document.createElement("script");
        script.src = sources[index];
        script.async = true;
        script.onerror = () => tryLoad(index + 1);
        document.head.appendChild(script);
      }};
      tryLoad(0);
    }})();
  </script>
</head>
<body>
<main>
{body}</main>
</body>
</html>
"""

    def generate(self, document: SourceDocument) -> Path:
        try:
            markdown_text = document.text()
        except OSError as exc:
            raise GenerationError(f"could not read {document.path.name}: {exc}") from exc
        output_path = output_path_for(document)
        html_doc = self.render_document(markdown_text, document.path.stem)
        try:
            with _atomic_output(output_path) as tmp_path:
                tmp_path.write_text(html_doc, encoding="utf-8")
        except OSError as exc:
            raise GenerationError(f"could not write {output_path.name}: {exc}") from exc
        return output_path


class PandocGenerator(Generator):
    """Export through pandoc, feeding it the live buffer text on stdin."""

    def __init__(
        self,
        name: str,
        target_format: str,
        *,
        command: str = "pandoc",
        extra_args: tuple[str, ...] = (),
        presentation: bool = False,
        timeout: float = 60.0,
    ) -> None:
        self.name = name
        self.target_format = target_format
        self.command = command
        self.extra_args = tuple(extra_args)
        self.presentation = presentation
        self.timeout = timeout

    def build_command(self, document: SourceDocument, output_file: Path) -> list[str]:
        source_format = "markdown" if document.kind == "markdown" else "org"
        return [
            self.command,
            "--from",
            source_format,
            "--to",
            self.target_format,
            "--standalone",
            "--metadata",
            f"pagetitle={document.path.stem}",
            *self.extra_args,
            "--output",
            str(output_file),
        ]

    def generate(self, document: SourceDocument) -> Path:
        try:
            source_text = document.text()
        except OSError as exc:
            raise GenerationError(f"could not read {document.path.name}: {exc}") from exc
        output_path = output_path_for(document)
        try:
            with _atomic_output(output_path) as tmp_path:
                _run_tool(
                    self.build_command(document, tmp_path),
                    input_text=source_text,
                    cwd=document.path.parent,
                    timeout=self.timeout,
                )
        except OSError as exc:
            raise GenerationError(f"could not write {output_path.name}: {exc}") from exc
        return output_path


class OrgExportGenerator(Generator):
    """Export with Emacs' own org exporters in batch mode."""

    def __init__(
        self,
        name: str,
        feature: str,
        function: str,
        *,
        command: str = "emacs",
        presentation: bool = False,
        timeout: float = 60.0,
    ) -> None:
        self.name = name
        self.feature = feature
        self.function = function
        self.command = command
        self.presentation = presentation
        self.timeout = timeout

    def build_command(self, source_file: Path) -> list[str]:
        program = (
            "(progn"
            " (when (require 'package nil t) (package-initialize))"
            f" (require '{self.feature})"
            f" ({self.function}))"
        )
        return [self.command, "--batch", str(source_file), "--eval", program]

    def generate(self, document: SourceDocument) -> Path:
        try:
            source_text = document.text()
        except OSError as exc:
            raise GenerationError(f"could not read {document.path.name}: {exc}") from exc
        output_path = output_path_for(document)
        # Export a scratch copy of the buffer beside the original so relative
        # links and includes keep resolving.
        fd, scratch_name = tempfile.mkstemp(
            prefix=f".{document.path.stem}.", suffix=".org", dir=document.path.parent
        )
        scratch = Path(scratch_name)
        exported = scratch.with_suffix(".html")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(source_text)
            with _atomic_output(output_path) as tmp_path:
                _run_tool(
                    self.build_command(scratch),
                    input_text=None,
                    cwd=document.path.parent,
                    timeout=self.timeout,
                )
                if not exported.is_file():
                    raise GenerationError(f"{self.function} produced no HTML")
                os.replace(exported, tmp_path)
        except OSError as exc:
            raise GenerationError(f"could not export {document.path.name}: {exc}") from exc
        finally:
            scratch.unlink(missing_ok=True)
            exported.unlink(missing_ok=True)
        return output_path


class GeneratorRegistry:
    """Name -> generator lookup; the identity generator is always present."""

    def __init__(self) -> None:
        self._generators: dict[str, Generator] = {}
        self.identity = IdentityGenerator()
        self.register(IDENTITY, self.identity)

    def register(self, name: str, generator, *, presentation: bool = False) -> Generator:
        """Add or replace ``name``; plain callables are wrapped as generators."""
        if not isinstance(generator, Generator):
            if not callable(generator):
                raise TypeError(f"generator for {name} must be a Generator or callable")
            generator = FunctionGenerator(name, generator, presentation=presentation)
        self._generators[name] = generator
        return generator

    def resolve(self, name: str) -> Generator:
        try:
            return self._generators[name]
        except KeyError:
            raise GeneratorNotFound(name) from None

    def names(self) -> list[str]:
        return sorted(self._generators)

    def __contains__(self, name: object) -> bool:
        return name in self._generators


def default_registry(config: PreviewConfig | None = None) -> GeneratorRegistry:
    config = config or PreviewConfig()
    registry = GeneratorRegistry()
    registry.register("markdown", MarkdownGenerator())
    registry.register(
        "html",
        PandocGenerator(
            "html",
            "html5",
            command=config.pandoc_command,
            extra_args=("--section-divs",),
            timeout=config.generator_timeout,
        ),
    )
    registry.register(
        "slides",
        PandocGenerator(
            "slides",
            "revealjs",
            command=config.pandoc_command,
            extra_args=("--variable", f"revealjs-url={config.revealjs_url}"),
            presentation=True,
            timeout=config.generator_timeout,
        ),
    )
    registry.register(
        "org-html",
        OrgExportGenerator(
            "org-html",
            "ox-html",
            "org-html-export-to-html",
            command=config.emacs_command,
            timeout=config.generator_timeout,
        ),
    )
    registry.register(
        "org-reveal",
        OrgExportGenerator(
            "org-reveal",
            "ox-reveal",
            "org-reveal-export-to-html",
            command=config.emacs_command,
            presentation=True,
            timeout=config.generator_timeout,
        ),
    )
    return registry


def infer_generator_name(document: SourceDocument, config: PreviewConfig) -> str | None:
    """Explicit document choice, then the configured override, then the file suffix."""
    if document.generator_name:
        return document.generator_name
    if config.generator_name:
        return config.generator_name
    return config.extension_generators.get(document.path.suffix.lower())
