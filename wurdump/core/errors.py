"""Exceptions raised by the clipboard engine and its services"""

from typing import Optional


class WurdumpError(Exception):
    """Base exception for Wurdump"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error

    def __str__(self):
        base_msg = super().__str__()
        if self.original_error:
            return f"{base_msg} (Caused by: {type(self.original_error).__name__}: {self.original_error})"
        return base_msg


class ClipboardReadError(WurdumpError):
    """Clipboard is empty, holds non-text data, or cannot be accessed"""
    pass


class ClipboardWriteError(WurdumpError):
    """Clipboard could not be written"""
    pass


class StorageError(WurdumpError):
    """A read or write against the history store failed"""
    pass


class StorageInitError(StorageError):
    """The history store could not be opened or migrated"""
    pass


class AIServiceError(WurdumpError):
    """The AI backend could not produce a transformation"""
    pass


class RequestCancelledError(AIServiceError):
    """An in-flight AI request was superseded or cancelled"""
    pass


class AIServiceUnavailableError(AIServiceError):
    """Transient AI backend failure (connection, timeout, 5xx); safe to retry"""
    pass
