"""Host environment collaborators: storage, loadable URIs and the clipboard."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Protocol

from .errors import PersistenceError

logger = logging.getLogger("mdpaste")


class HostBridge(Protocol):
    """Everything the pipeline needs from the surrounding application."""

    def to_loadable_uri(self, path: str) -> str: ...

    async def ensure_directory(self, path: str) -> None: ...

    async def write_bytes(self, path: str, data: bytes) -> None: ...

    async def write_text(self, path: str, text: str) -> None: ...


class ClipboardSink(Protocol):
    def write(self, html: str, text: str) -> None: ...


class LocalHost:
    """Host bridge backed by the local filesystem and ``file://`` locators."""

    def to_loadable_uri(self, path: str) -> str:
        return Path(path).expanduser().resolve().as_uri()

    async def ensure_directory(self, path: str) -> None:
        try:
            await asyncio.to_thread(Path(path).mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(path, str(exc)) from exc

    async def write_bytes(self, path: str, data: bytes) -> None:
        try:
            await asyncio.to_thread(Path(path).write_bytes, data)
        except OSError as exc:
            raise PersistenceError(path, str(exc)) from exc
        logger.debug("Wrote %d bytes to %s", len(data), path)

    async def write_text(self, path: str, text: str) -> None:
        try:
            await asyncio.to_thread(Path(path).write_text, text, encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(path, str(exc)) from exc
        logger.debug("Wrote %s", path)

    async def read_text(self, path: str) -> str:
        return await asyncio.to_thread(Path(path).read_text, encoding="utf-8")


class QtClipboardSink:
    """Writes rich HTML plus a plain-text fallback to the system clipboard."""

    def __init__(self, application: Optional[object] = None) -> None:
        self._application = application

    def write(self, html: str, text: str) -> None:
        from PySide6.QtCore import QMimeData
        from PySide6.QtWidgets import QApplication

        app = self._application or QApplication.instance() or QApplication([])
        self._application = app
        mime_data = QMimeData()
        mime_data.setHtml(html)
        mime_data.setText(text)
        # One setMimeData call so both representations land together.
        QApplication.clipboard().setMimeData(mime_data)
        logger.info("Copied %d characters of HTML to the clipboard", len(html))


class FileClipboardSink:
    """Clipboard stand-in that writes the HTML representation to a file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def write(self, html: str, text: str) -> None:
        try:
            self.path.write_text(html, encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(str(self.path), str(exc)) from exc
        logger.info("Saved clipboard HTML to %s", self.path)
