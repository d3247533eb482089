from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest


def pytest_configure() -> None:
    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))


class RecordingTranslator:
    """Fake service: records every call and answers through `respond(prompt, call_no)`."""

    def __init__(self, respond: Optional[Callable[[str, int], str]] = None):
        from booktranslate.translator import DummyTranslator

        self.calls: List[Dict[str, Any]] = []
        self._echo = DummyTranslator()
        self._respond = respond

    def generate(self, model: str, prompt: str, system: str = "", options: Optional[Dict[str, Any]] = None) -> str:
        self.calls.append({"model": model, "prompt": prompt, "system": system, "options": dict(options or {})})
        if self._respond is not None:
            return self._respond(prompt, len(self.calls))
        return self._echo.generate(model, prompt, system, options)


class SlowAfter(RecordingTranslator):
    """Echoes until call number `slow_from`, then stalls longer than any test timeout."""

    def __init__(self, slow_from: int, delay: float = 0.5):
        super().__init__()
        self.slow_from = slow_from
        self.delay = delay

    def generate(self, model: str, prompt: str, system: str = "", options: Optional[Dict[str, Any]] = None) -> str:
        if len(self.calls) + 1 >= self.slow_from:
            time.sleep(self.delay)
        return super().generate(model, prompt, system, options)


@pytest.fixture
def recording_translator() -> RecordingTranslator:
    return RecordingTranslator()


@pytest.fixture
def make_epub(tmp_path: Path) -> Callable[..., Path]:
    """Write a small EPUB whose spine holds one chapter per body string."""
    from ebooklib import epub

    def _make(bodies: List[str], name: str = "book.epub") -> Path:
        book = epub.EpubBook()
        book.set_identifier("test-book")
        book.set_title("Test Book")
        book.set_language("fr")
        chapters = []
        for i, body in enumerate(bodies):
            chapter = epub.EpubHtml(title=f"Chapter {i + 1}", file_name=f"chap_{i + 1:02d}.xhtml", lang="fr")
            chapter.content = f"<html><head><title>Chapter {i + 1}</title></head><body>{body}</body></html>"
            book.add_item(chapter)
            chapters.append(chapter)
        book.toc = tuple(chapters)
        book.add_item(epub.EpubNcx())
        book.add_item(epub.EpubNav())
        book.spine = chapters
        path = tmp_path / name
        epub.write_epub(str(path), book)
        return path

    return _make


@pytest.fixture
def make_translator() -> Callable[..., RecordingTranslator]:
    return RecordingTranslator


@pytest.fixture
def make_slow_translator() -> Callable[..., SlowAfter]:
    return SlowAfter
