"""System clipboard read/write capability"""

from typing import Protocol

import pyperclip
from loguru import logger

from ..errors import ClipboardReadError, ClipboardWriteError


class ClipboardReader(Protocol):
    def read_text(self) -> str:
        ...


class PyperclipClipboard:
    """Clipboard access through pyperclip"""

    def read_text(self) -> str:
        """
        Read current clipboard text

        Returns:
            Clipboard text

        Raises:
            ClipboardReadError: Clipboard is empty, non-text or inaccessible
        """
        try:
            content = pyperclip.paste()
        except pyperclip.PyperclipException as e:
            raise ClipboardReadError("Clipboard is not accessible", e) from e

        if not isinstance(content, str) or not content:
            raise ClipboardReadError("Clipboard holds no text content")

        return content

    def write_text(self, text: str) -> None:
        """Replace clipboard contents with text"""
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as e:
            raise ClipboardWriteError("Failed to set clipboard content", e) from e

        logger.info(f"Set clipboard content: {len(text)} chars")
