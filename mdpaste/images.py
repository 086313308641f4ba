"""Image type detection, data URIs and remote image localization."""

from __future__ import annotations

import base64
import logging
import re
from typing import Dict, Optional, Protocol, Set
from urllib.parse import urlparse

import requests
from filetype import guess

from .config import LocalizeConfig
from .errors import PersistenceError, PreconditionError
from .models import LocalizedImage, LocalizeResult
from .utils import join_native, strip_trailing_separators

logger = logging.getLogger("mdpaste")

MARKDOWN_IMAGE_PATTERN = re.compile(r"!\[[^\]]*]\(([^)]+)\)")
MIN_IMAGE_BYTES = 16


class AssetStorage(Protocol):
    async def ensure_directory(self, path: str) -> None: ...

    async def write_bytes(self, path: str, data: bytes) -> None: ...


def detect_image_format(data: bytes) -> Optional[str]:
    """Detect image type using filetype; returns lowercase extension."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    return None


def infer_image_extension(content_type: Optional[str], data: bytes) -> Optional[str]:
    """Guess an image file extension from HTTP metadata or file signature."""
    detected = detect_image_format(data)
    if detected:
        return detected
    if not content_type:
        return None
    parts = content_type.split(";")[0].split("/")
    if len(parts) == 2 and parts[0] == "image":
        ext = parts[1].strip().lower()
        if ext == "jpeg":
            ext = "jpg"
        if ext == "svg+xml":
            ext = "svg"
        return ext
    return None


def svg_data_uri(svg: str) -> str:
    encoded = base64.b64encode(svg.encode("utf-8")).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


def png_data_uri(data: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(data).decode("ascii")


def _download_name(url: str, extension: Optional[str]) -> str:
    name = urlparse(url).path.rsplit("/", 1)[-1] or "image.png"
    if extension and "." not in name:
        name = f"{name}.{extension}"
    return name


def _unique_name(name: str, taken: Set[str]) -> str:
    """Suffix ``name`` with -2, -3, ... until no earlier download uses it."""
    stem, dot, ext = name.rpartition(".")
    if not dot:
        stem, ext = name, ""
    candidate = name
    counter = 1
    while candidate in taken:
        counter += 1
        candidate = f"{stem}-{counter}{dot}{ext}"
    taken.add(candidate)
    return candidate


def _source_url(src: str, assets_dir: str, site_prefix: str) -> Optional[str]:
    """Return the URL to download ``src`` from, or None when it stays as is."""
    if src.startswith(f"{strip_trailing_separators(assets_dir)}/"):
        return None
    if src.startswith(("http://", "https://")):
        return src
    prefix = site_prefix.strip()
    if prefix:
        return f"{prefix.rstrip('/')}{src}" if src.startswith("/") else f"{prefix.rstrip('/')}/{src}"
    return None


async def localize_images(
    markdown: str,
    base_dir: Optional[str],
    storage: AssetStorage,
    config: Optional[LocalizeConfig] = None,
    session: Optional[requests.Session] = None,
) -> LocalizeResult:
    """Download remote images into the assets directory and point Markdown at them."""
    config = config or LocalizeConfig()
    if not base_dir:
        raise PreconditionError(
            f"The document has not been saved; cannot determine its {config.assets_dir} directory"
        )

    assets_path = join_native(base_dir, strip_trailing_separators(config.assets_dir))
    session = session or requests.Session()
    result = LocalizeResult(markdown=markdown)
    url_map: Dict[str, str] = {}
    taken_names: Set[str] = set()
    directory_ready = False

    for match in MARKDOWN_IMAGE_PATTERN.finditer(markdown):
        src = match.group(1).strip()
        if src in url_map or src in result.skipped:
            continue
        source_url = _source_url(src, config.assets_dir, config.site_prefix)
        if source_url is None:
            continue

        try:
            resp = session.get(source_url, timeout=config.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Failed to fetch image %s: %s", source_url, exc)
            result.skipped.append(src)
            continue

        content_type = resp.headers.get("Content-Type", "")
        data = resp.content
        if len(data) < MIN_IMAGE_BYTES or len(data) > config.max_image_bytes:
            logger.warning("Skipping %s: unexpected size (%d bytes)", source_url, len(data))
            result.skipped.append(src)
            continue

        extension = infer_image_extension(content_type, data)
        if not extension or extension not in config.allowed_types:
            logger.warning(
                "Skipping %s: unsupported image type (Content-Type=%s)",
                source_url,
                content_type,
            )
            result.skipped.append(src)
            continue

        filename = _unique_name(_download_name(source_url, extension), taken_names)
        if not directory_ready:
            await storage.ensure_directory(assets_path)
            directory_ready = True
        try:
            await storage.write_bytes(join_native(assets_path, filename), data)
        except PersistenceError as exc:
            logger.warning("Failed to write image %s: %s", filename, exc)
            result.skipped.append(src)
            continue

        relative_path = f"{strip_trailing_separators(config.assets_dir)}/{filename}"
        url_map[src] = relative_path
        result.images.append(
            LocalizedImage(
                original_src=src,
                source_url=source_url,
                filename=filename,
                relative_path=relative_path,
            )
        )

    def _replace(match: re.Match) -> str:
        src = match.group(1).strip()
        if src not in url_map:
            return match.group(0)
        return match.group(0).replace(match.group(1), url_map[src])

    result.markdown = MARKDOWN_IMAGE_PATTERN.sub(_replace, markdown)
    logger.info("Localized %d image(s), skipped %d", len(result.images), len(result.skipped))
    return result
