from __future__ import annotations

from pathlib import Path
from typing import Iterator, List, Tuple

import ebooklib
from ebooklib import epub


class EpubReadError(RuntimeError):
    """Raised when an EPUB container or one of its pages cannot be read."""


class EpubReader:
    """
    Page-by-page access to the XHTML documents of an EPUB, in spine order.

    Spine entries that do not resolve to a document item (missing manifest
    entries, images referenced directly from the spine) are not pages.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        if not self.path.exists():
            raise EpubReadError(f"File not found: {self.path}")
        try:
            self._book = epub.read_epub(str(self.path), options={"ignore_ncx": True})
        except Exception as exc:  # ebooklib raises bare zipfile/lxml/EpubException errors
            raise EpubReadError(f"Cannot read EPUB {self.path}: {exc}") from exc

        self._pages: List[epub.EpubItem] = []
        for idref, _linear in self._book.spine:
            item = self._book.get_item_with_id(idref)
            if item is None or item.get_type() != ebooklib.ITEM_DOCUMENT:
                continue
            self._pages.append(item)
        self._current = 0

    @property
    def title(self) -> str:
        meta = self._book.get_metadata("DC", "title")
        return meta[0][0] if meta else self.path.stem

    @property
    def page_count(self) -> int:
        return len(self._pages)

    def set_current_page(self, index: int) -> None:
        if not 0 <= index < len(self._pages):
            raise EpubReadError(f"Page {index} out of range (book has {len(self._pages)} pages).")
        self._current = index

    def get_current(self) -> bytes:
        if not self._pages:
            raise EpubReadError(f"{self.path} has no readable pages.")
        item = self._pages[self._current]
        content = item.get_content()
        if content is None:
            raise EpubReadError(f"Page {self._current} ({item.get_name()}) has no content.")
        return content

    def iter_pages(self) -> Iterator[Tuple[int, bytes]]:
        for index in range(self.page_count):
            self.set_current_page(index)
            yield index, self.get_current()
