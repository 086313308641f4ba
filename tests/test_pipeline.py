"""Tests for mdpaste.pipeline entry points."""

from __future__ import annotations

import asyncio
import re
import threading

import pytest

from mdpaste.config import RewriteConfig
from mdpaste.converter import MarkdownItConverter
from mdpaste.errors import HostUnavailable, PreconditionError
from mdpaste.exporter import SelfContainedExporter
from mdpaste.models import NamingStrategy
from mdpaste.pipeline import (
    PreviewSession,
    copy_to_clipboard,
    export_diagrams_to_raster,
    export_for_clipboard,
    render_preview,
)

CDN = "https://cdn.example.com"


class GatedConverter:
    """Converter whose ``old`` document blocks until released."""

    def __init__(self) -> None:
        self.release_old = threading.Event()

    def convert(self, markdown: str, theme_css: str) -> str:
        if markdown == "old":
            self.release_old.wait(timeout=5)
        return f'<p>{markdown}</p><img src="assets/{markdown}.png">'


class TestRenderPreview:
    """Tests for render_preview()."""

    def test_rewrites_after_conversion(self, host) -> None:
        markdown = "![a](assets/a.png)\n\n![b](img/b.png)\n\n![c](https://x.org/c.png)"
        html = render_preview(
            markdown, "", "/docs", "assets", CDN, converter=MarkdownItConverter(), host=host
        )
        assert 'src="file:///docs/assets/a.png"' in html
        assert 'src="https://cdn.example.com/img/b.png"' in html
        assert 'src="https://x.org/c.png"' in html

    def test_unsaved_document_keeps_assets_paths(self, host) -> None:
        html = render_preview(
            "![a](assets/a.png)", "", None, "assets", CDN, converter=MarkdownItConverter(), host=host
        )
        assert 'src="assets/a.png"' in html

    def test_theme_css_is_embedded(self, host) -> None:
        html = render_preview(
            "# Title", "h1 { color: red; }", None, converter=MarkdownItConverter(), host=host
        )
        assert "h1 { color: red; }" in html

    def test_requires_host(self) -> None:
        with pytest.raises(HostUnavailable):
            render_preview("x", "", "/docs", converter=MarkdownItConverter(), host=None)


class TestPreviewSession:
    """Tests for PreviewSession sequence tagging."""

    @pytest.mark.asyncio
    async def test_stale_refresh_is_dropped(self, host) -> None:
        converter = GatedConverter()
        session = PreviewSession(converter, host)
        config = RewriteConfig(base_dir="/docs")

        old = asyncio.create_task(session.refresh("old", "", config))
        await asyncio.sleep(0)
        assert await session.refresh("new", "", config)
        converter.release_old.set()
        assert not await old

        assert "<p>new</p>" in session.html
        assert 'src="file:///docs/assets/new.png"' in session.html

    @pytest.mark.asyncio
    async def test_sequential_refreshes_apply(self, host) -> None:
        session = PreviewSession(GatedConverter(), host)
        config = RewriteConfig()
        assert await session.refresh("first", "", config)
        assert await session.refresh("second", "", config)
        assert "<p>second</p>" in session.html


class TestExportDiagramsToRaster:
    """Tests for export_diagrams_to_raster()."""

    @pytest.mark.asyncio
    async def test_single_block_uses_flat_name(self, rasterizer, host) -> None:
        result = await export_diagrams_to_raster(
            "pre ```mermaid\nA-->B\n``` post", "/docs", "assets", rasterizer=rasterizer, host=host
        )
        assert re.fullmatch(r"pre !\[Mermaid 图\]\(assets/\d+\.png\) post", result.markdown)
        assert host.directories == ["/docs/assets"]
        (path,) = host.files
        assert re.fullmatch(r"/docs/assets/\d+\.png", path)

    @pytest.mark.asyncio
    async def test_single_block_with_empty_neighbour_stays_flat(self, rasterizer, host) -> None:
        result = await export_diagrams_to_raster(
            "```mermaid\n```\n```mermaid\nA-->B\n```", "/docs", rasterizer=rasterizer, host=host
        )
        assert re.fullmatch(r"```mermaid\n```\n!\[Mermaid 图\]\(assets/\d+\.png\)", result.markdown)

    @pytest.mark.asyncio
    async def test_multiple_blocks_are_sequenced(self, rasterizer, host) -> None:
        markdown = "```mermaid\nA\n```\n```mermaid\nB\n```"
        result = await export_diagrams_to_raster(markdown, "/docs", rasterizer=rasterizer, host=host)
        first, second = result.artifacts
        prefix_one, suffix_one = first.rsplit("-", 1)
        prefix_two, suffix_two = second.rsplit("-", 1)
        assert prefix_one == prefix_two
        assert (suffix_one, suffix_two) == ("1.png", "2.png")
        assert host.write_order == [f"/docs/assets/{first}", f"/docs/assets/{second}"]

    @pytest.mark.asyncio
    async def test_empty_fence_does_not_shift_suffixes(self, rasterizer, host) -> None:
        markdown = "```mermaid\n```\n```mermaid\nA\n```\n```mermaid\nB\n```"
        result = await export_diagrams_to_raster(markdown, "/docs", rasterizer=rasterizer, host=host)
        assert [name.rsplit("-", 1)[1] for name in result.artifacts] == ["1.png", "2.png"]
        assert result.markdown.startswith("```mermaid\n```\n")

    @pytest.mark.asyncio
    async def test_explicit_naming_overrides_count(self, rasterizer, host) -> None:
        result = await export_diagrams_to_raster(
            "```mermaid\nA\n```",
            "/docs",
            rasterizer=rasterizer,
            host=host,
            naming=NamingStrategy.SEQUENCED,
        )
        assert result.artifacts[0].endswith("-1.png")

    @pytest.mark.asyncio
    async def test_windows_base_dir(self, rasterizer, host) -> None:
        await export_diagrams_to_raster(
            "```mermaid\nA\n```", "C:\\notes", "assets", rasterizer=rasterizer, host=host
        )
        assert host.directories == ["C:\\notes\\assets"]
        assert all(path.startswith("C:\\notes\\assets\\") for path in host.files)

    @pytest.mark.asyncio
    async def test_failure_on_second_of_three(self, rasterizer, host) -> None:
        markdown = "```mermaid\nA\n```\n```mermaid\nFAIL\n```\n```mermaid\nC\n```"
        result = await export_diagrams_to_raster(markdown, "/docs", rasterizer=rasterizer, host=host)
        assert result.replaced_count == 2
        assert result.failed_count == 1
        assert "```mermaid\nFAIL\n```" in result.markdown
        assert result.markdown.count("![Mermaid 图]") == 2

    @pytest.mark.asyncio
    async def test_no_blocks_has_no_side_effects(self, rasterizer, host) -> None:
        result = await export_diagrams_to_raster("text only", "/docs", rasterizer=rasterizer, host=host)
        assert result.markdown == "text only"
        assert result.replaced_count == 0
        assert host.directories == []

    @pytest.mark.asyncio
    async def test_requires_base_dir(self, rasterizer, host, renderer) -> None:
        with pytest.raises(PreconditionError):
            await export_diagrams_to_raster("```mermaid\nA\n```", None, rasterizer=rasterizer, host=host)
        assert renderer.calls == []
        assert host.directories == []

    @pytest.mark.asyncio
    async def test_requires_host(self, rasterizer, renderer) -> None:
        with pytest.raises(HostUnavailable):
            await export_diagrams_to_raster("```mermaid\nA\n```", "/docs", rasterizer=rasterizer, host=None)
        assert renderer.calls == []


class TestClipboard:
    """Tests for export_for_clipboard() and copy_to_clipboard()."""

    @pytest.mark.asyncio
    async def test_export_requires_host(self, rasterizer) -> None:
        with pytest.raises(HostUnavailable):
            await export_for_clipboard("<p>x</p>", exporter=SelfContainedExporter(rasterizer), host=None)

    @pytest.mark.asyncio
    async def test_copy_writes_html_and_text_together(self, rasterizer, host, sink) -> None:
        html = await copy_to_clipboard(
            '<div class="mermaid">A-->B</div>',
            "# source",
            exporter=SelfContainedExporter(rasterizer),
            host=host,
            sink=sink,
        )
        assert sink.writes == [(html, "# source")]
        assert html.startswith("<!DOCTYPE html>")
        assert "data:image/svg+xml;base64," in html

    @pytest.mark.asyncio
    async def test_copy_without_host_writes_nothing(self, rasterizer, sink) -> None:
        with pytest.raises(HostUnavailable):
            await copy_to_clipboard(
                "<p>x</p>", "x", exporter=SelfContainedExporter(rasterizer), host=None, sink=sink
            )
        assert sink.writes == []
