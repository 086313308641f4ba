"""Image reference classification and rewriting for rendered HTML."""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional, Protocol

from .config import LOADABLE_SCHEMES
from .models import Reference, ReferenceKind
from .utils import join_native, strip_trailing_separators

logger = logging.getLogger("mdpaste")

IMG_SRC_PATTERN = re.compile(r"(<img\b[^>]*\bsrc=)([\"'])([^\"']+?)\2", re.IGNORECASE)
REMOTE_PATTERN = re.compile(r"^(https?:|data:|//)", re.IGNORECASE)
ABSOLUTE_PREFIX_PATTERN = re.compile(r"^(https?:)?//", re.IGNORECASE)


class LoadableUriBridge(Protocol):
    def to_loadable_uri(self, path: str) -> str: ...


def _is_internal(value: str) -> bool:
    lowered = value.lower()
    return any(lowered.startswith(scheme) for scheme in LOADABLE_SCHEMES)


def _assets_prefixes(assets_dir: str) -> tuple:
    name = strip_trailing_separators(assets_dir)
    return (f"{name}/", f"./{name}/")


def classify(ref: str, assets_dir: str) -> ReferenceKind:
    """Classify an image reference against the configured assets directory name."""
    value = ref.strip()
    if REMOTE_PATTERN.match(value):
        return ReferenceKind.REMOTE
    if _is_internal(value):
        return ReferenceKind.INTERNAL
    if value.startswith(_assets_prefixes(assets_dir)):
        return ReferenceKind.ASSETS_RELATIVE
    return ReferenceKind.OTHER_RELATIVE


def make_reference(ref: str, assets_dir: str) -> Reference:
    return Reference(raw=ref, trimmed=ref.strip(), kind=classify(ref, assets_dir))


def _rewrite_sources(
    html: str,
    assets_dir: str,
    rewrite: Callable[[Reference], Optional[str]],
) -> str:
    """Apply ``rewrite`` to every image source; ``None`` keeps the original markup."""

    def _replace(match: re.Match) -> str:
        before, quote, url = match.groups()
        reference = make_reference(url, assets_dir)
        if not reference.trimmed:
            return match.group(0)
        replacement = rewrite(reference)
        if replacement is None:
            return match.group(0)
        return f"{before}{quote}{replacement}{quote}"

    return IMG_SRC_PATTERN.sub(_replace, html)


def to_loadable(
    html: str,
    base_dir: Optional[str],
    assets_dir: str,
    bridge: LoadableUriBridge,
) -> str:
    """Point assets-relative image sources at loadable locators under ``base_dir``."""
    if not base_dir:
        return html

    def _rewrite(reference: Reference) -> Optional[str]:
        if reference.kind is not ReferenceKind.ASSETS_RELATIVE:
            return None
        relative = reference.trimmed[2:] if reference.trimmed.startswith("./") else reference.trimmed
        return bridge.to_loadable_uri(join_native(base_dir, relative))

    return _rewrite_sources(html, assets_dir, _rewrite)


def apply_prefix(html: str, prefix: Optional[str], assets_dir: str) -> str:
    """Prepend ``prefix`` to every relative image source outside the assets directory.

    Repeated application is idempotent only when ``prefix`` is an absolute URL,
    because prefixed sources must classify as remote to be skipped next time.
    """
    effective = (prefix or "").strip()
    if not effective:
        return html
    if not ABSOLUTE_PREFIX_PATTERN.match(effective):
        logger.warning(
            "Image prefix %s is not an absolute URL; prefixed sources will be prefixed again",
            effective,
        )
    trimmed_prefix = effective.rstrip("/")

    def _rewrite(reference: Reference) -> Optional[str]:
        if reference.kind is not ReferenceKind.OTHER_RELATIVE:
            return None
        if reference.trimmed.startswith("/"):
            return f"{trimmed_prefix}{reference.trimmed}"
        return f"{trimmed_prefix}/{reference.trimmed}"

    return _rewrite_sources(html, assets_dir, _rewrite)
