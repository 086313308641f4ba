"""Utility helpers for path handling and file naming."""

from __future__ import annotations

import re
import time
from typing import Optional

TRAILING_SEPARATORS = re.compile(r"[\\/]+$")
LAST_SEGMENT = re.compile(r"[^\\/]*$")


def strip_trailing_separators(value: str) -> str:
    return TRAILING_SEPARATORS.sub("", value)


def path_separator(base_dir: str) -> str:
    """Return the separator convention used by ``base_dir``."""
    return "\\" if "\\" in base_dir else "/"


def join_native(base_dir: str, relative: str) -> str:
    """Join a forward-slash relative path onto ``base_dir`` using its own separators."""
    base = strip_trailing_separators(base_dir)
    sep = path_separator(base_dir)
    return f"{base}{sep}{relative.replace('/', sep)}"


def base_dir_of(file_path: Optional[str]) -> Optional[str]:
    """Return the directory holding ``file_path`` or ``None`` for unsaved documents."""
    if not file_path:
        return None
    directory = strip_trailing_separators(LAST_SEGMENT.sub("", file_path))
    if not directory:
        # A bare "/x.md" lives at the root, a bare "x.md" in the working directory.
        return file_path[:1] if file_path[:1] in ("/", "\\") else "."
    return directory


def timestamp_millis() -> int:
    return int(time.time() * 1000)
