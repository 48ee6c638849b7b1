"""
Delivery of export results on the user's machine: downloads, clipboard, print.

Clipboard writes go through pyperclip first. When that fails (no clipboard
mechanism, headless session, denied access) a hidden Tk window's clipboard
is used instead; only if both fail is ClipboardDenied raised.
"""
import logging
import tempfile
import webbrowser
from pathlib import Path

import pyperclip

from .exceptions import ClipboardDenied, PopupBlocked

logger = logging.getLogger(__name__)


def unique_path(directory: Path, filename: str) -> Path:
    """directory/filename, or 'name (1).ext', 'name (2).ext'... if taken."""
    candidate = directory / filename
    stem, suffix = candidate.stem, candidate.suffix
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem} ({counter}){suffix}"
        counter += 1
    return candidate


def copy_with_tk(text: str) -> None:
    """Copy through a withdrawn Tk root window."""
    try:
        import tkinter
    except ImportError as exc:
        raise ClipboardDenied() from exc

    try:
        root = tkinter.Tk()
    except tkinter.TclError as exc:
        raise ClipboardDenied() from exc
    try:
        root.withdraw()
        root.clipboard_clear()
        root.clipboard_append(text)
        # The clipboard is only handed over once the event loop has run.
        root.update()
    except tkinter.TclError as exc:
        raise ClipboardDenied() from exc
    finally:
        root.destroy()


class Deliverer:
    def __init__(self, download_dir: Path, clipboard=pyperclip, fallback_copy=copy_with_tk, browser=webbrowser):
        self.download_dir = Path(download_dir)
        self.clipboard = clipboard
        self.fallback_copy = fallback_copy
        self.browser = browser

    def save_download(self, filename: str, content: bytes) -> Path:
        # Never trust a server-supplied path.
        filename = Path(filename).name or "export"
        self.download_dir.mkdir(parents=True, exist_ok=True)
        path = unique_path(self.download_dir, filename)
        path.write_bytes(content)
        logger.info("Export saved", extra={"path": str(path), "bytes": len(content)})
        return path

    def copy(self, text: str) -> None:
        try:
            self.clipboard.copy(text)
            return
        except pyperclip.PyperclipException as exc:
            logger.info(f"System clipboard unavailable ({exc}); trying fallback")
        self.fallback_copy(text)

    def print_html(self, html: str) -> Path:
        """Write the print document to a temp file and open it in a new browser window."""
        with tempfile.NamedTemporaryFile("w", suffix=".html", prefix="hive-print-", delete=False, encoding="utf-8") as handle:
            handle.write(html)
            path = Path(handle.name)
        if not self.browser.open_new(path.as_uri()):
            path.unlink(missing_ok=True)
            raise PopupBlocked()
        return path
