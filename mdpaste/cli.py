"""Command-line entry point for mdpaste."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional, Sequence

from .browser import BrowserSession
from .config import DEFAULT_ASSETS_DIR, LocalizeConfig, RewriteConfig
from .converter import MarkdownItConverter
from .errors import MdpasteError
from .exporter import SelfContainedExporter
from .host import FileClipboardSink, LocalHost, QtClipboardSink
from .images import localize_images
from .models import EmbedMode
from .pipeline import copy_to_clipboard, export_diagrams_to_raster, render_preview
from .rasterizer import DiagramRasterizer
from .utils import base_dir_of

logger = logging.getLogger("mdpaste.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("preview", *argv)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("path", type=Path, help="Markdown file to process")
    parser.add_argument(
        "--assets-dir",
        default=DEFAULT_ASSETS_DIR,
        help="Folder name, relative to the document, holding local images",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_render_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--theme-css",
        type=Path,
        default=None,
        help="CSS file applied on top of the built-in styles",
    )
    parser.add_argument(
        "--prefix",
        default="",
        help="Absolute URL prepended to relative image paths outside the assets folder",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Render Markdown to paste-ready HTML and manage its images and diagrams.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    preview_parser = subparsers.add_parser("preview", help="Render a previewable HTML document")
    _add_common_arguments(preview_parser)
    _add_render_arguments(preview_parser)
    preview_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write HTML here instead of STDOUT",
    )

    export_parser = subparsers.add_parser(
        "export-diagrams", help="Replace Mermaid blocks with PNG images in the assets folder"
    )
    _add_common_arguments(export_parser)

    copy_parser = subparsers.add_parser(
        "copy", help="Copy self-contained HTML with embedded diagrams to the clipboard"
    )
    _add_common_arguments(copy_parser)
    _add_render_arguments(copy_parser)
    copy_parser.add_argument(
        "--embed",
        choices=[mode.value for mode in EmbedMode],
        default=EmbedMode.SVG_DATA_URI.value,
        help="How rendered diagrams are embedded (default: svg data URI)",
    )
    copy_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the HTML to this file instead of the system clipboard",
    )

    localize_parser = subparsers.add_parser(
        "localize", help="Download remote images into the assets folder"
    )
    _add_common_arguments(localize_parser)
    localize_parser.add_argument(
        "--site-prefix",
        default="",
        help="Site URL used to download site-relative image paths",
    )

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def _read_theme(path: Optional[Path]) -> str:
    if path is None:
        return ""
    return path.read_text(encoding="utf-8")


def _run_preview(args: argparse.Namespace, host: LocalHost) -> None:
    markdown = args.path.read_text(encoding="utf-8")
    html = render_preview(
        markdown,
        _read_theme(args.theme_css),
        base_dir_of(str(args.path.resolve())),
        args.assets_dir,
        args.prefix,
        converter=MarkdownItConverter(),
        host=host,
    )
    if args.output:
        args.output.write_text(html, encoding="utf-8")
        logger.info("Saved preview to %s", args.output)
        return
    sys.stdout.write(html if html.endswith("\n") else html + "\n")
    sys.stdout.flush()


async def _run_export(args: argparse.Namespace, host: LocalHost) -> int:
    path = args.path.resolve()
    markdown = await host.read_text(str(path))
    async with BrowserSession() as session:
        result = await export_diagrams_to_raster(
            markdown,
            base_dir_of(str(path)),
            args.assets_dir,
            rasterizer=DiagramRasterizer.with_browser(session),
            host=host,
        )
    if result.replaced_count:
        await host.write_text(str(path), result.markdown)
        logger.info("Updated %s", path)
    for failure in result.failures:
        logger.warning("Diagram %d (%s): %s", failure.index + 1, failure.stage, failure.message)
    return 1 if result.failures else 0


async def _run_copy(args: argparse.Namespace, host: LocalHost) -> None:
    path = args.path.resolve()
    markdown = await host.read_text(str(path))
    config = RewriteConfig(base_dir_of(str(path)), args.assets_dir, args.prefix)
    html = render_preview(
        markdown,
        _read_theme(args.theme_css),
        config.base_dir,
        config.assets_dir,
        config.prefix,
        converter=MarkdownItConverter(),
        host=host,
    )
    sink = FileClipboardSink(args.output) if args.output else QtClipboardSink()
    async with BrowserSession() as session:
        exporter = SelfContainedExporter(
            DiagramRasterizer.with_browser(session),
            mode=EmbedMode(args.embed),
        )
        await copy_to_clipboard(html, markdown, exporter=exporter, host=host, sink=sink)


async def _run_localize(args: argparse.Namespace, host: LocalHost) -> None:
    path = args.path.resolve()
    markdown = await host.read_text(str(path))
    result = await localize_images(
        markdown,
        base_dir_of(str(path)),
        host,
        LocalizeConfig(assets_dir=args.assets_dir, site_prefix=args.site_prefix),
    )
    if result.images:
        await host.write_text(str(path), result.markdown)
        logger.info("Updated %s", path)


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    host = LocalHost()
    status = 0
    try:
        if args.command == "preview":
            _run_preview(args, host)
        elif args.command == "export-diagrams":
            status = asyncio.run(_run_export(args, host))
        elif args.command == "copy":
            asyncio.run(_run_copy(args, host))
        else:
            asyncio.run(_run_localize(args, host))
    except MdpasteError as exc:
        logger.error("%s", exc)
        status = 1
    except OSError as exc:
        logger.error("Could not read %s: %s", args.path, exc)
        status = 1
    if status:
        sys.exit(status)


if __name__ == "__main__":
    main()
