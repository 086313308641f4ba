"""Data models used throughout the asset and diagram pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List


class ReferenceKind(str, Enum):
    """Classification of an image source reference."""

    REMOTE = "remote"
    INTERNAL = "internal"
    ASSETS_RELATIVE = "assets-relative"
    OTHER_RELATIVE = "other-relative"


class NamingStrategy(str, Enum):
    """How generated diagram image files are named within one export."""

    FLAT = "flat"
    SEQUENCED = "sequenced"


class EmbedMode(str, Enum):
    """How the clipboard exporter embeds rendered diagrams."""

    SVG_DATA_URI = "svg"
    PNG_DATA_URI = "png"
    INLINE_SVG = "inline"


@dataclass(frozen=True)
class Reference:
    """Image source found in an HTML fragment."""

    raw: str
    trimmed: str
    kind: ReferenceKind


@dataclass(frozen=True)
class DiagramBlock:
    """One fenced diagram occurrence in Markdown text."""

    code: str
    start: int
    end: int
    index: int

    @property
    def is_empty(self) -> bool:
        return not self.code


@dataclass
class RasterArtifact:
    """PNG bytes produced for a diagram, with the file name they are stored under."""

    file_name: str
    data: bytes


@dataclass
class BlockFailure:
    """A diagram block that could not be replaced."""

    index: int
    stage: str
    message: str


@dataclass
class DiagramExportResult:
    """Outcome of exporting the diagrams of a document to raster images."""

    markdown: str
    replaced_count: int = 0
    failures: List[BlockFailure] = field(default_factory=list)
    artifacts: List[str] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failures)


@dataclass
class LocalizedImage:
    """Remote image reference that was downloaded into the assets directory."""

    original_src: str
    source_url: str
    filename: str
    relative_path: str


@dataclass
class LocalizeResult:
    """Outcome of localizing the remote images of a document."""

    markdown: str
    images: List[LocalizedImage] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
