from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import Doctype, PageElement, PreformattedString


DEFAULT_ALLOW_TAGS = ["p"]
# <rt> holds ruby annotations (furigana, pinyin) which would otherwise be glued onto the base text.
DEFAULT_BLACKLIST_TAGS = ["rt"]


@dataclass(frozen=True)
class ScopeContext:
    """Inclusion state inherited from the ancestors of a node."""
    included: bool = False
    blacklisted: bool = False

    def enter(self, matches_allow: bool, matches_blacklist: bool) -> "ScopeContext":
        blacklisted = self.blacklisted or matches_blacklist
        return ScopeContext(
            included=(self.included or matches_allow) and not blacklisted,
            blacklisted=blacklisted,
        )


@dataclass(frozen=True)
class Segment:
    """One non-blank line of extracted text and its position among all lines."""
    index: int
    text: str


def parse_page(markup: Union[bytes, str]) -> BeautifulSoup:
    """Parse one page of (X)HTML into a tree, dropping doctype declarations."""
    soup = BeautifulSoup(markup, "html.parser")
    for node in [n for n in soup.descendants if isinstance(n, Doctype)]:
        node.extract()
    return soup


def _is_text(node: PageElement) -> bool:
    # Comments, CDATA, doctypes and processing instructions are PreformattedString subclasses.
    return isinstance(node, NavigableString) and not isinstance(node, PreformattedString)


def _walk(node: PageElement, ctx: ScopeContext, allow: frozenset, blacklist: frozenset, buf: List[str]) -> None:
    if isinstance(node, Tag):
        name = (node.name or "").lower()
        child_ctx = ctx.enter(name in allow, name in blacklist)
        for child in node.children:
            _walk(child, child_ctx, allow, blacklist, buf)
    elif _is_text(node):
        text = str(node)
        # Text with a line break is kept even outside any allowed tag: it separates blocks.
        if ctx.included or "\n" in text:
            buf.append(text)


def extract_text(
    root: PageElement,
    allow_tags: Optional[Iterable[str]] = None,
    blacklist_tags: Optional[Iterable[str]] = None,
) -> str:
    """
    Walk the tree and collect the text of every node that sits inside an allowed tag.

    A blacklisted tag excludes its whole subtree, even where an allowed tag is nested
    below it. Text nodes containing a newline are always collected.
    """
    allow = frozenset(t.lower() for t in (DEFAULT_ALLOW_TAGS if allow_tags is None else allow_tags))
    blacklist = frozenset(
        t.lower() for t in (DEFAULT_BLACKLIST_TAGS if blacklist_tags is None else blacklist_tags)
    )
    buf: List[str] = []
    _walk(root, ScopeContext(), allow, blacklist, buf)
    return "".join(buf)


def split_lines(buffer: str) -> List[str]:
    """Split on newlines; a terminating newline does not open an extra empty line."""
    if not buffer:
        return []
    pieces = buffer.split("\n")
    if pieces[-1] == "":
        pieces.pop()
    return [p[:-1] if p.endswith("\r") else p for p in pieces]


def split_segments(buffer: str) -> Tuple[List[Segment], int]:
    """
    Split an extraction buffer into segments.

    Returns:
      segments: the non-blank lines, stripped, with their 0-based line index
      total: the number of lines, blank ones included (progress denominator)
    """
    lines = split_lines(buffer)
    segments = [Segment(index=i, text=line.strip()) for i, line in enumerate(lines) if line.strip()]
    return segments, len(lines)


def extract_segments(
    markup: Union[bytes, str],
    allow_tags: Optional[Iterable[str]] = None,
    blacklist_tags: Optional[Iterable[str]] = None,
) -> Tuple[List[Segment], int]:
    """Parse one page and return its segments and line count."""
    soup = parse_page(markup)
    return split_segments(extract_text(soup, allow_tags, blacklist_tags))
