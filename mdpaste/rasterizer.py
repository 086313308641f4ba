"""Mermaid rendering and SVG rasterization backed by headless Chromium."""

from __future__ import annotations

import asyncio
import logging
import math
import os
import re
from pathlib import Path
from typing import Optional, Protocol, Tuple

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .browser import BrowserSession
from .config import MERMAID_SCRIPT_ENV, MERMAID_SCRIPT_URL, EngineOptions, engine_options
from .errors import DiagramRenderError, RasterConversionError
from .images import detect_image_format, svg_data_uri

logger = logging.getLogger("mdpaste")

_LENGTH_PATTERN = re.compile(r"^\s*([0-9]*\.?[0-9]+)\s*(px)?\s*$", re.IGNORECASE)

_BLANK_DOCUMENT = '<!DOCTYPE html><html><head><meta charset="utf-8"></head><body></body></html>'

_RENDER_JS = """
async ([id, code]) => {
  try {
    const { svg } = await window.mermaid.render(id, code);
    return svg;
  } finally {
    const leftover = document.getElementById("d" + id);
    if (leftover) leftover.remove();
  }
}
"""


class DiagramRenderer(Protocol):
    async def initialize(self) -> None: ...

    async def render(self, render_id: str, code: str) -> str: ...


class SvgConverter(Protocol):
    async def to_png(self, svg: str) -> bytes: ...


def resolve_mermaid_script() -> str:
    """Return the Mermaid bundle location, honouring the environment override."""
    override = os.getenv(MERMAID_SCRIPT_ENV, "").strip()
    if not override:
        return MERMAID_SCRIPT_URL
    if re.match(r"^https?://", override, re.IGNORECASE):
        return override
    override_path = Path(override).expanduser()
    if override_path.is_file():
        logger.debug("%s override detected at %s", MERMAID_SCRIPT_ENV, override_path)
        return str(override_path.resolve())
    logger.warning(
        "%s is set to %s but the file does not exist; falling back to %s",
        MERMAID_SCRIPT_ENV,
        override_path,
        MERMAID_SCRIPT_URL,
    )
    return MERMAID_SCRIPT_URL


def _parse_length(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    match = _LENGTH_PATTERN.match(value)
    if not match:
        return None
    length = float(match.group(1))
    return length if length > 0 else None


def svg_intrinsic_size(svg: str, fallback: Tuple[int, int]) -> Tuple[int, int]:
    """Read the pixel size of an SVG from width/height, then viewBox, then ``fallback``."""
    root = BeautifulSoup(svg, "html.parser").find("svg")
    if root is None:
        return fallback
    width = _parse_length(root.get("width"))
    height = _parse_length(root.get("height"))
    view_box = (root.get("viewbox") or "").replace(",", " ").split()
    if len(view_box) == 4:
        try:
            box_width, box_height = float(view_box[2]), float(view_box[3])
        except ValueError:
            box_width = box_height = 0.0
        if width is None and box_width > 0:
            width = box_width
        if height is None and box_height > 0:
            height = box_height
    if width is None or height is None:
        return fallback
    return math.ceil(width), math.ceil(height)


class MermaidRenderer:
    """Renders Mermaid source to SVG markup inside one shared browser page."""

    def __init__(
        self,
        session: BrowserSession,
        options: Optional[EngineOptions] = None,
        script_src: Optional[str] = None,
    ) -> None:
        self.session = session
        self.options = options or engine_options()
        self.script_src = script_src or resolve_mermaid_script()
        self._page: Optional[Page] = None
        self._ready: Optional["asyncio.Future[None]"] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Load and configure Mermaid once; repeated calls are no-ops."""
        if self._ready is None:
            self._ready = asyncio.ensure_future(self._setup())
        ready = self._ready
        try:
            await ready
        except Exception:
            if self._ready is ready:
                self._ready = None
            raise

    async def _setup(self) -> None:
        try:
            page = await self.session.new_page()
        except PlaywrightError as exc:
            raise DiagramRenderError(f"Could not open a page for the Mermaid engine: {exc}") from exc
        page.set_default_timeout(self.options.navigation_timeout * 1000)
        try:
            await page.set_content(_BLANK_DOCUMENT)
            if re.match(r"^https?://", self.script_src, re.IGNORECASE):
                await page.add_script_tag(url=self.script_src)
            else:
                await page.add_script_tag(path=self.script_src)
            await page.evaluate(
                "config => window.mermaid.initialize(config)",
                self.options.as_mermaid_config(),
            )
        except PlaywrightError as exc:
            await page.close()
            raise DiagramRenderError(f"Failed to start the Mermaid engine: {exc}") from exc
        logger.info("Mermaid engine ready (%s)", self.script_src)
        self._page = page

    async def render(self, render_id: str, code: str) -> str:
        await self.initialize()
        assert self._page is not None
        async with self._lock:
            try:
                svg = await self._page.evaluate(_RENDER_JS, [render_id, code])
            except PlaywrightError as exc:
                raise DiagramRenderError(f"Mermaid could not render {render_id}: {exc}") from exc
        if not svg:
            raise DiagramRenderError(f"Mermaid returned no SVG for {render_id}")
        return svg


class SvgRasterizer:
    """Converts SVG markup to PNG bytes by drawing it in a sized browser viewport."""

    def __init__(self, session: BrowserSession, options: Optional[EngineOptions] = None) -> None:
        self.session = session
        self.options = options or engine_options()

    async def to_png(self, svg: str) -> bytes:
        width, height = svg_intrinsic_size(svg, self.options.fallback_size)
        try:
            page = await self.session.new_page(viewport={"width": width, "height": height})
        except PlaywrightError as exc:
            raise RasterConversionError(f"Could not open a page for rasterization: {exc}") from exc
        try:
            await page.set_content(
                '<!DOCTYPE html><html><body style="margin:0">'
                f'<img id="diagram" src="{svg_data_uri(svg)}" width="{width}" height="{height}">'
                "</body></html>"
            )
            loaded = await page.evaluate(
                """async () => {
                  const img = document.getElementById("diagram");
                  try { await img.decode(); } catch (err) { return false; }
                  return img.naturalWidth > 0;
                }"""
            )
            if not loaded:
                raise RasterConversionError("SVG image failed to load")
            data = await page.screenshot(
                type="png",
                omit_background=True,
                clip={"x": 0, "y": 0, "width": width, "height": height},
            )
        except PlaywrightError as exc:
            raise RasterConversionError(f"SVG to PNG conversion failed: {exc}") from exc
        finally:
            await page.close()

        if detect_image_format(data) != "png":
            raise RasterConversionError("Rasterized output is not a PNG image")
        logger.debug("Rasterized SVG at %dx%d (%d bytes)", width, height, len(data))
        return data


class DiagramRasterizer:
    """Turns diagram source into PNG bytes: render to SVG, then rasterize."""

    def __init__(self, renderer: DiagramRenderer, converter: SvgConverter) -> None:
        self.renderer = renderer
        self.converter = converter

    @classmethod
    def with_browser(
        cls,
        session: BrowserSession,
        options: Optional[EngineOptions] = None,
    ) -> "DiagramRasterizer":
        return cls(MermaidRenderer(session, options), SvgRasterizer(session, options))

    async def render_svg(self, code: str, render_id: str) -> str:
        return await self.renderer.render(render_id, code)

    async def rasterize(self, code: str, render_id: str) -> bytes:
        svg = await self.render_svg(code, render_id)
        return await self.converter.to_png(svg)
