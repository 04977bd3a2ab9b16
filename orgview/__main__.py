"""orgview: live HTML preview of an org or markdown outline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import config_file_path, load_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orgview",
        description="Edit an outline document and keep its rendered preview in sync.",
    )
    parser.add_argument("path", help="Source document (.org, .md, .html).")
    parser.add_argument("--generator", default=None, help="Generator name, overriding dispatch by file suffix.")
    parser.add_argument(
        "--delay",
        type=float,
        default=None,
        help="Seconds of typing inactivity before regenerating (0 disables live regeneration).",
    )
    parser.add_argument("--identity", default=None, help="Display identity of the shared preview view.")
    parser.add_argument(
        "--config",
        default=None,
        help=f"JSON config file (default: {config_file_path()}).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log diagnostics to stderr.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    path = Path(args.path).expanduser()
    if not path.exists():
        print(f"Path does not exist: {path}", file=sys.stderr)
        return 2
    if not path.is_file():
        print(f"Path is not a file: {path}", file=sys.stderr)
        return 2

    config_path = Path(args.config).expanduser() if args.config is not None else None
    config = load_config(config_path).with_overrides(
        generator_name=args.generator,
        after_change_idle_delay=args.delay,
        preview_buffer_identity=args.identity,
    )

    # Qt is imported late so --help works without a display.
    from PySide6.QtWidgets import QApplication

    from .window import OrgViewWindow

    app = QApplication(sys.argv[:1])
    app.setApplicationName("orgview")
    app.setDesktopFileName("orgview")

    window = OrgViewWindow(path.resolve(), config)
    window.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
