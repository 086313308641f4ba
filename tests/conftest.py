"""Shared pytest fixtures: in-memory host and scripted diagram engine fakes."""

from __future__ import annotations

from typing import Dict, List, Set, Tuple

import pytest

from mdpaste.errors import DiagramRenderError, PersistenceError, RasterConversionError
from mdpaste.rasterizer import DiagramRasterizer

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class FakeRenderer:
    """Renders any source to a small SVG; sources containing ``FAIL`` raise."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, str]] = []
        self.initialized = 0

    async def initialize(self) -> None:
        self.initialized += 1

    async def render(self, render_id: str, code: str) -> str:
        await self.initialize()
        self.calls.append((render_id, code))
        if "FAIL" in code:
            raise DiagramRenderError(f"Parse error in {render_id}")
        return f'<svg xmlns="http://www.w3.org/2000/svg" width="120" height="40"><text>{code}</text></svg>'


class FakeSvgConverter:
    """Returns fixed PNG bytes; SVGs containing ``BADRASTER`` raise."""

    def __init__(self) -> None:
        self.converted: List[str] = []

    async def to_png(self, svg: str) -> bytes:
        self.converted.append(svg)
        if "BADRASTER" in svg:
            raise RasterConversionError("Canvas conversion failed")
        return PNG_BYTES


class MemoryHost:
    """Host bridge keeping writes in memory and emitting ``file://`` locators."""

    def __init__(self) -> None:
        self.files: Dict[str, bytes] = {}
        self.texts: Dict[str, str] = {}
        self.directories: List[str] = []
        self.fail_paths: Set[str] = set()
        self.write_order: List[str] = []

    def to_loadable_uri(self, path: str) -> str:
        return f"file://{path}"

    async def ensure_directory(self, path: str) -> None:
        self.directories.append(path)

    async def write_bytes(self, path: str, data: bytes) -> None:
        if any(path.endswith(suffix) for suffix in self.fail_paths):
            raise PersistenceError(path, "disk full")
        self.write_order.append(path)
        self.files[path] = data

    async def write_text(self, path: str, text: str) -> None:
        self.texts[path] = text


class RecordingSink:
    def __init__(self) -> None:
        self.writes: List[Tuple[str, str]] = []

    def write(self, html: str, text: str) -> None:
        self.writes.append((html, text))


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def svg_converter() -> FakeSvgConverter:
    return FakeSvgConverter()


@pytest.fixture
def rasterizer(renderer: FakeRenderer, svg_converter: FakeSvgConverter) -> DiagramRasterizer:
    return DiagramRasterizer(renderer, svg_converter)


@pytest.fixture
def host() -> MemoryHost:
    return MemoryHost()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
