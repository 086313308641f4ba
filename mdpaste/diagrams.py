"""Fenced diagram discovery and offset-preserving Markdown splicing."""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Protocol, Sequence

from .config import DIAGRAM_ALT_TEXT, DIAGRAM_LANGUAGE
from .errors import DiagramRenderError, PersistenceError, RasterConversionError
from .models import BlockFailure, DiagramBlock, DiagramExportResult, NamingStrategy, RasterArtifact
from .utils import join_native, strip_trailing_separators, timestamp_millis

logger = logging.getLogger("mdpaste")


class Rasterizer(Protocol):
    async def rasterize(self, code: str, render_id: str) -> bytes: ...


class ByteStorage(Protocol):
    async def write_bytes(self, path: str, data: bytes) -> None: ...


def _fence_pattern(language: str) -> "re.Pattern[str]":
    return re.compile(r"```" + re.escape(language) + r"([\s\S]*?)```")


def locate_blocks(markdown: str, language: str = DIAGRAM_LANGUAGE) -> List[DiagramBlock]:
    """Return every fenced ``language`` block in ``markdown`` in document order.

    Offsets cover the whole fence, opening and closing backticks included, and
    refer to ``markdown`` as passed in. Each call scans from the beginning.
    """
    blocks: List[DiagramBlock] = []
    for index, match in enumerate(_fence_pattern(language).finditer(markdown)):
        blocks.append(
            DiagramBlock(
                code=match.group(1).strip(),
                start=match.start(),
                end=match.end(),
                index=index,
            )
        )
    return blocks


def has_diagram_blocks(markdown: str, language: str = DIAGRAM_LANGUAGE) -> bool:
    """Return True when ``markdown`` still contains a non-empty diagram fence."""
    return any(not block.is_empty for block in locate_blocks(markdown, language))


def diagram_file_name(timestamp: int, sequence: int, naming: NamingStrategy) -> str:
    """Name the PNG for the ``sequence``-th non-empty diagram (1-based)."""
    if naming is NamingStrategy.FLAT:
        return f"{timestamp}.png"
    return f"{timestamp}-{sequence}.png"


def image_markup(assets_dir: str, file_name: str, alt_text: str = DIAGRAM_ALT_TEXT) -> str:
    return f"![{alt_text}]({strip_trailing_separators(assets_dir)}/{file_name})"


async def splice_diagrams(
    markdown: str,
    blocks: Sequence[DiagramBlock],
    *,
    rasterizer: Rasterizer,
    storage: ByteStorage,
    assets_path: str,
    assets_dir: str,
    naming: NamingStrategy,
    timestamp: Optional[int] = None,
    alt_text: str = DIAGRAM_ALT_TEXT,
) -> DiagramExportResult:
    """Replace each non-empty diagram block with an image reference.

    Output is assembled left to right from slices of the original text, so
    offsets never drift. A block whose render, conversion or write fails is
    copied through unchanged and reported in ``failures``.
    """
    if timestamp is None:
        timestamp = timestamp_millis()

    parts: List[str] = []
    result = DiagramExportResult(markdown=markdown)
    cursor = 0
    sequence = 0

    for block in sorted(blocks, key=lambda item: item.start):
        parts.append(markdown[cursor : block.start])
        original_span = markdown[block.start : block.end]
        cursor = block.end

        if block.is_empty:
            parts.append(original_span)
            continue

        # Failed blocks still consume a number; empty ones do not.
        sequence += 1
        file_name = diagram_file_name(timestamp, sequence, naming)
        stage = "render"
        try:
            artifact = RasterArtifact(
                file_name=file_name,
                data=await rasterizer.rasterize(block.code, f"export-mermaid-{timestamp}-{block.index}"),
            )
            stage = "persist"
            await storage.write_bytes(join_native(assets_path, artifact.file_name), artifact.data)
        except (DiagramRenderError, RasterConversionError, PersistenceError) as exc:
            if isinstance(exc, RasterConversionError):
                stage = "rasterize"
            logger.warning("Diagram %d left unchanged (%s failed): %s", block.index + 1, stage, exc)
            result.failures.append(BlockFailure(index=block.index, stage=stage, message=str(exc)))
            parts.append(original_span)
            continue

        logger.debug("Diagram %d saved as %s", block.index + 1, file_name)
        parts.append(image_markup(assets_dir, file_name, alt_text))
        result.artifacts.append(file_name)
        result.replaced_count += 1

    parts.append(markdown[cursor:])
    result.markdown = "".join(parts)
    return result
