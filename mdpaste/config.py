"""Configuration objects and constants for the asset pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional, Tuple

DEFAULT_ASSETS_DIR = "assets"
DIAGRAM_LANGUAGE = "mermaid"
DIAGRAM_CLASS = "mermaid"
DIAGRAM_ALT_TEXT = "Mermaid 图"
FALLBACK_RASTER_SIZE: Tuple[int, int] = (800, 600)
MERMAID_SCRIPT_URL = "https://cdn.jsdelivr.net/npm/mermaid@10/dist/mermaid.min.js"
MERMAID_SCRIPT_ENV = "MDPASTE_MERMAID_JS"

# Schemes produced by loadable-URI bridges for already rewritten previews.
LOADABLE_SCHEMES: Tuple[str, ...] = ("file:",)


@dataclass
class RewriteConfig:
    """Per-call settings for image reference rewriting."""

    base_dir: Optional[str] = None
    assets_dir: str = DEFAULT_ASSETS_DIR
    prefix: str = ""


@dataclass(frozen=True)
class EngineOptions:
    """Options handed to the diagram engine when it starts."""

    start_on_load: bool = False
    security_level: str = "strict"
    navigation_timeout: float = 30.0
    fallback_size: Tuple[int, int] = FALLBACK_RASTER_SIZE

    def as_mermaid_config(self) -> dict:
        return {"startOnLoad": self.start_on_load, "securityLevel": self.security_level}


@lru_cache(maxsize=1)
def engine_options() -> EngineOptions:
    """Return the process-wide engine options, created on first use."""
    return EngineOptions()


@dataclass
class LocalizeConfig:
    """Settings controlling remote image localization."""

    assets_dir: str = DEFAULT_ASSETS_DIR
    site_prefix: str = ""
    timeout: float = 15.0
    max_image_bytes: int = 10 * 1024 * 1024
    allowed_types: frozenset = field(
        default_factory=lambda: frozenset({"png", "jpg", "gif", "webp", "bmp", "tiff", "svg"})
    )
