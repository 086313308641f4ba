"""MCP server exposing mdpaste preview and diagram export tools."""

from __future__ import annotations

import logging
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from .browser import BrowserSession
from .config import DEFAULT_ASSETS_DIR
from .converter import MarkdownItConverter
from .host import LocalHost
from .pipeline import export_diagrams_to_raster, render_preview
from .rasterizer import DiagramRasterizer
from .utils import base_dir_of

logger = logging.getLogger("mdpaste.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="mdpaste")


def _resolve(path: str) -> Path:
    source = Path(path).expanduser().resolve()
    if not source.is_file():
        raise FileNotFoundError(f"Markdown file does not exist: {source}")
    return source


@mcp.tool()
async def preview(
    path: str,
    prefix: str = "",
    assets_dir: str = DEFAULT_ASSETS_DIR,
) -> str:
    """Render a Markdown file to previewable HTML with rewritten image sources."""
    source = _resolve(path)
    host = LocalHost()
    markdown = await host.read_text(str(source))
    return render_preview(
        markdown,
        "",
        base_dir_of(str(source)),
        assets_dir,
        prefix,
        converter=MarkdownItConverter(),
        host=host,
    )


@mcp.tool()
async def export_diagrams(
    path: str,
    assets_dir: str = DEFAULT_ASSETS_DIR,
) -> str:
    """Replace Mermaid blocks in a Markdown file with PNG images and return the new Markdown."""
    source = _resolve(path)
    host = LocalHost()
    markdown = await host.read_text(str(source))
    async with BrowserSession() as session:
        result = await export_diagrams_to_raster(
            markdown,
            base_dir_of(str(source)),
            assets_dir,
            rasterizer=DiagramRasterizer.with_browser(session),
            host=host,
        )
    if result.replaced_count:
        await host.write_text(str(source), result.markdown)
    if result.failures:
        logger.error("%d diagram(s) could not be exported", result.failed_count)
    return result.markdown


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
