from unittest.mock import patch

import pyperclip
import pytest

from wurdump.core.clipboard import PyperclipClipboard
from wurdump.core.errors import ClipboardReadError, ClipboardWriteError


class TestPyperclipClipboard:
    @patch('wurdump.core.clipboard.access.pyperclip.paste', return_value="copied")
    def test_read_text(self, mock_paste):
        assert PyperclipClipboard().read_text() == "copied"

    @patch('wurdump.core.clipboard.access.pyperclip.paste', return_value="")
    def test_empty_clipboard(self, mock_paste):
        with pytest.raises(ClipboardReadError):
            PyperclipClipboard().read_text()

    @patch('wurdump.core.clipboard.access.pyperclip.paste', return_value=None)
    def test_non_text_clipboard(self, mock_paste):
        with pytest.raises(ClipboardReadError):
            PyperclipClipboard().read_text()

    @patch('wurdump.core.clipboard.access.pyperclip.paste',
           side_effect=pyperclip.PyperclipException("no clipboard mechanism"))
    def test_inaccessible_clipboard(self, mock_paste):
        with pytest.raises(ClipboardReadError) as excinfo:
            PyperclipClipboard().read_text()
        assert "no clipboard mechanism" in str(excinfo.value)

    @patch('wurdump.core.clipboard.access.pyperclip.copy')
    def test_write_text(self, mock_copy):
        PyperclipClipboard().write_text("hello")
        mock_copy.assert_called_once_with("hello")

    @patch('wurdump.core.clipboard.access.pyperclip.copy',
           side_effect=pyperclip.PyperclipException("no clipboard mechanism"))
    def test_write_failure(self, mock_copy):
        with pytest.raises(ClipboardWriteError):
            PyperclipClipboard().write_text("hello")
