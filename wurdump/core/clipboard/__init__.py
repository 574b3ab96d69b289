"""Clipboard monitoring and content classification"""

from .item import ClipboardItem, ContentType
from .classifier import ContentClassifier, ContentInfo, classify
from .access import PyperclipClipboard
from .monitor import ClipboardMonitor, MonitorHandle, MonitorState

__all__ = [
    'ClipboardItem', 'ContentType', 'ContentClassifier', 'ContentInfo', 'classify',
    'PyperclipClipboard', 'ClipboardMonitor', 'MonitorHandle', 'MonitorState'
]
