"""Entry points tying conversion, rewriting, diagram export and clipboard export together."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .config import DEFAULT_ASSETS_DIR, DIAGRAM_LANGUAGE, RewriteConfig
from .converter import MarkdownConverter
from .diagrams import Rasterizer, locate_blocks, splice_diagrams
from .errors import HostUnavailable, PreconditionError
from .exporter import SelfContainedExporter
from .host import ClipboardSink, HostBridge
from .models import DiagramExportResult, NamingStrategy
from .references import apply_prefix, to_loadable
from .utils import join_native, strip_trailing_separators, timestamp_millis

logger = logging.getLogger("mdpaste")


def _require_host(host: Optional[HostBridge], operation: str) -> HostBridge:
    if host is None:
        raise HostUnavailable(operation)
    return host


def rewrite_references(html: str, config: RewriteConfig, host: HostBridge) -> str:
    """Make assets-relative images loadable, then prefix the remaining relative ones."""
    processed = to_loadable(html, config.base_dir, config.assets_dir, host)
    return apply_prefix(processed, config.prefix, config.assets_dir)


def render_preview(
    markdown: str,
    theme_css: str,
    base_dir: Optional[str],
    assets_dir: str = DEFAULT_ASSETS_DIR,
    prefix: str = "",
    *,
    converter: MarkdownConverter,
    host: Optional[HostBridge],
) -> str:
    """Convert Markdown to themed HTML and rewrite its image references for preview."""
    host = _require_host(host, "Preview")
    raw_html = converter.convert(markdown, theme_css)
    config = RewriteConfig(base_dir=base_dir, assets_dir=assets_dir, prefix=prefix)
    return rewrite_references(raw_html, config, host)


class PreviewSession:
    """Keeps the latest preview, discarding refreshes that finish out of order."""

    def __init__(self, converter: MarkdownConverter, host: Optional[HostBridge]) -> None:
        self.converter = converter
        self.host = host
        self.html = ""
        self._issued = 0
        self._applied = 0

    async def refresh(
        self,
        markdown: str,
        theme_css: str,
        config: RewriteConfig,
    ) -> bool:
        """Regenerate the preview; returns False when a newer refresh already landed."""
        self._issued += 1
        ticket = self._issued
        html = await asyncio.to_thread(
            render_preview,
            markdown,
            theme_css,
            config.base_dir,
            config.assets_dir,
            config.prefix,
            converter=self.converter,
            host=self.host,
        )
        if ticket < self._applied:
            logger.debug("Dropping stale preview #%d (latest applied #%d)", ticket, self._applied)
            return False
        self._applied = ticket
        self.html = html
        return True


async def export_diagrams_to_raster(
    markdown: str,
    base_dir: Optional[str],
    assets_dir: str = DEFAULT_ASSETS_DIR,
    *,
    rasterizer: Rasterizer,
    host: Optional[HostBridge],
    naming: Optional[NamingStrategy] = None,
    language: str = DIAGRAM_LANGUAGE,
) -> DiagramExportResult:
    """Rasterize every diagram block into the assets directory and splice image links in."""
    host = _require_host(host, "Diagram export")
    if not base_dir:
        raise PreconditionError("Save the Markdown file before exporting diagrams")

    blocks = locate_blocks(markdown, language)
    pending = [block for block in blocks if not block.is_empty]
    if not pending:
        logger.info("No %s blocks to export", language)
        return DiagramExportResult(markdown=markdown)

    if naming is None:
        naming = NamingStrategy.FLAT if len(pending) == 1 else NamingStrategy.SEQUENCED

    assets_name = strip_trailing_separators(assets_dir)
    assets_path = join_native(base_dir, assets_name)
    await host.ensure_directory(assets_path)

    result = await splice_diagrams(
        markdown,
        blocks,
        rasterizer=rasterizer,
        storage=host,
        assets_path=assets_path,
        assets_dir=assets_name,
        naming=naming,
        timestamp=timestamp_millis(),
    )
    logger.info(
        "Exported %d/%d diagrams (%d failed)",
        result.replaced_count,
        len(pending),
        result.failed_count,
    )
    return result


async def export_for_clipboard(
    fragment: str,
    *,
    exporter: SelfContainedExporter,
    host: Optional[HostBridge],
) -> str:
    """Return a self-contained HTML document for a rendered preview snapshot."""
    _require_host(host, "Clipboard export")
    return await exporter.export(fragment)


async def copy_to_clipboard(
    fragment: str,
    plain_text: str,
    *,
    exporter: SelfContainedExporter,
    host: Optional[HostBridge],
    sink: ClipboardSink,
) -> str:
    """Export ``fragment`` and write it with a plain-text fallback in one clipboard write."""
    html = await export_for_clipboard(fragment, exporter=exporter, host=host)
    sink.write(html, plain_text)
    return html
