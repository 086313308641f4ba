"""Self-contained HTML export: inline rendered diagrams for pasting."""

from __future__ import annotations

import logging
from typing import Optional

from bs4 import BeautifulSoup

from .config import DIAGRAM_CLASS, DIAGRAM_ALT_TEXT
from .errors import DiagramRenderError, MdpasteError
from .images import png_data_uri, svg_data_uri
from .models import EmbedMode
from .rasterizer import DiagramRasterizer

logger = logging.getLogger("mdpaste")

_FRAGMENT_SHELL = '<html><head><meta charset="utf-8"></head><body>{body}</body></html>'


class SelfContainedExporter:
    """Replaces diagram placeholders in a rendered snapshot with embedded images."""

    def __init__(self, rasterizer: DiagramRasterizer, mode: EmbedMode = EmbedMode.SVG_DATA_URI) -> None:
        self.rasterizer = rasterizer
        self.mode = mode

    def _parse(self, fragment: str) -> BeautifulSoup:
        soup = BeautifulSoup(fragment, "html.parser")
        if soup.find("html") is None:
            body = soup.find("body")
            inner = body.decode_contents() if body is not None else fragment
            soup = BeautifulSoup(_FRAGMENT_SHELL.format(body=inner), "html.parser")
        return soup

    async def _embed(self, soup: BeautifulSoup, code: str, render_id: str, svg: Optional[str] = None):
        if svg is None:
            svg = await self.rasterizer.render_svg(code, render_id)
        if self.mode is EmbedMode.INLINE_SVG:
            root = BeautifulSoup(svg, "html.parser").find("svg")
            if root is None:
                raise DiagramRenderError(f"Renderer output for {render_id} has no <svg> root")
            return root.extract()
        if self.mode is EmbedMode.PNG_DATA_URI:
            src = png_data_uri(await self.rasterizer.converter.to_png(svg))
        else:
            src = svg_data_uri(svg)
        return soup.new_tag(
            "img",
            attrs={"src": src, "alt": DIAGRAM_ALT_TEXT, "style": "max-width:100%;height:auto"},
        )

    async def export(self, fragment: str, id_prefix: Optional[str] = None) -> str:
        """Return ``<!DOCTYPE html>`` plus the full document with diagrams embedded."""
        soup = self._parse(fragment)
        prefix = id_prefix or "clipboard-mermaid"
        index = 0
        embedded = 0
        for node in soup.select(f".{DIAGRAM_CLASS}"):
            # A live snapshot may already hold the SVG the preview rendered.
            rendered = node.find("svg")
            svg = str(rendered) if rendered is not None else None
            code = node.get_text()
            if svg is None and not code.strip():
                continue
            render_id = f"{prefix}-{index}"
            index += 1
            try:
                replacement = await self._embed(soup, code, render_id, svg)
            except MdpasteError as exc:
                logger.warning("Diagram %s kept as source, rendering failed: %s", render_id, exc)
                continue
            except Exception:  # pylint: disable=broad-except
                logger.exception("Unexpected error embedding diagram %s", render_id)
                continue
            node.replace_with(replacement)
            embedded += 1
        logger.debug("Embedded %d of %d diagram node(s)", embedded, index)
        for tag in soup(["script", "noscript"]):
            tag.decompose()
        return "<!DOCTYPE html>" + str(soup.find("html"))
