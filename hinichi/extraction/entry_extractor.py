"""Streaming extraction of entries from hotentry listing pages.

HTML structure of one listing block:

    .entrylist-contents-main
      h3.entrylist-contents-title > a[href]       title and url
      .entrylist-contents-users > a > span        "446 users"
      .entrylist-contents-domain > a > span       domain
      .entrylist-contents-description > p         description
      .entrylist-contents-date                    "テクノロジー 2026/02/10 01:17"
      .entrylist-contents-tags > a                tags
      .entrylist-contents-thumb > a > img[src]    thumbnail

The page is tokenized incrementally, so entries become available while the
body is still arriving.
"""

import codecs
import re
from enum import Enum
from html.parser import HTMLParser
from typing import AsyncIterable, AsyncIterator, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from ..models import ListingEntry


Chunk = Union[bytes, str]

VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
})

USERS_PATTERN = re.compile(r"\d+")
DATE_TOKEN_PATTERN = re.compile(r"\d{4}/\d{2}/\d{2}")


class Collector(Enum):
    """Which field the current text node is routed to."""
    IDLE = "idle"
    TITLE = "title"
    USERS = "users"
    DOMAIN = "domain"
    DESCRIPTION = "description"
    DATE = "date"
    TAG = "tag"


class Selector:
    """Descendant selector built from `.class` and `tag` parts, e.g. `.foo a span`."""

    def __init__(self, text: str):
        self.text = text
        self.parts = text.split()

    @staticmethod
    def _part_matches(part: str, tag: str, classes: FrozenSet[str]) -> bool:
        if part.startswith("."):
            return part[1:] in classes
        return part == tag

    def matches(self, ancestors: List[Tuple[str, FrozenSet[str]]], tag: str, classes: FrozenSet[str]) -> bool:
        if not self._part_matches(self.parts[-1], tag, classes):
            return False
        index = len(self.parts) - 2
        for ancestor_tag, ancestor_classes in reversed(ancestors):
            if index < 0:
                break
            if self._part_matches(self.parts[index], ancestor_tag, ancestor_classes):
                index -= 1
        return index < 0

    def __repr__(self) -> str:
        return f"Selector({self.text!r})"


BLOCK_SELECTOR = Selector(".entrylist-contents-main")
IMAGE_SELECTOR = Selector(".entrylist-contents-thumb img")
TEXT_SELECTORS = [
    (Selector(".entrylist-contents-title a"), Collector.TITLE),
    (Selector(".entrylist-contents-users span"), Collector.USERS),
    (Selector(".entrylist-contents-domain a span"), Collector.DOMAIN),
    (Selector(".entrylist-contents-description"), Collector.DESCRIPTION),
    (Selector(".entrylist-contents-date"), Collector.DATE),
    (Selector(".entrylist-contents-tags a"), Collector.TAG),
]


def split_category_date(raw: str) -> Tuple[str, str]:
    """Split "テクノロジー 2026/02/10 14:30" into (category, date).

    Only the last two tokens are inspected. Text that does not end in a
    date + time pair comes back as ("", raw.strip()).
    """
    text = raw.strip()
    parts = text.split()
    if len(parts) >= 2 and DATE_TOKEN_PATTERN.search(parts[-2]):
        return " ".join(parts[:-2]), f"{parts[-2]} {parts[-1]}"
    return "", text


def parse_users(text: str, default: int = 0) -> int:
    """First run of digits in the text, `default` when there is none."""
    match = USERS_PATTERN.search(text)
    return int(match.group()) if match else default


class ListingExtractor(HTMLParser):
    """Incremental listing parser.

    Feed chunks with `feed_chunk()`, collect finished entries with `drain()`,
    and call `close()` once the body is exhausted.
    """

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._ancestors: List[Tuple[str, FrozenSet[str]]] = []
        self._completed: List[ListingEntry] = []
        self._entry_open = False

        self._collector = Collector.IDLE
        self._collector_depth = 0
        self._buffer: List[str] = []
        self._saw_text = False

        self._reset_entry()

    # -- public API --------------------------------------------------------

    def feed_chunk(self, chunk: Chunk) -> None:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        if chunk:
            self.feed(chunk)

    def drain(self) -> List[ListingEntry]:
        entries, self._completed = self._completed, []
        return entries

    def close(self) -> None:
        tail = self._decoder.decode(b"", final=True)
        if tail:
            self.feed(tail)
        super().close()
        if self._collector is not Collector.IDLE:
            self._disarm()
        if self._entry_open:
            self._finish_entry()
            self._entry_open = False

    # -- HTMLParser hooks --------------------------------------------------

    def handle_starttag(self, tag, attrs):
        self._end_text_node()
        attributes = dict(attrs)
        classes = frozenset((attributes.get("class") or "").split())
        self._open_element(tag, attributes, classes)
        if tag not in VOID_ELEMENTS:
            self._ancestors.append((tag, classes))

    def handle_startendtag(self, tag, attrs):
        self._end_text_node()
        attributes = dict(attrs)
        classes = frozenset((attributes.get("class") or "").split())
        self._open_element(tag, attributes, classes, self_closing=True)

    def handle_endtag(self, tag):
        self._end_text_node()
        if tag in VOID_ELEMENTS:
            return
        for index in range(len(self._ancestors) - 1, -1, -1):
            if self._ancestors[index][0] == tag:
                del self._ancestors[index:]
                break
        else:
            return  # stray end tag
        if self._collector is not Collector.IDLE and len(self._ancestors) < self._collector_depth:
            self._disarm()

    def handle_data(self, data):
        if self._collector is Collector.IDLE:
            return
        self._buffer.append(data)
        if data.strip():
            self._saw_text = True

    def handle_comment(self, data):
        self._end_text_node()

    # -- state machine -----------------------------------------------------

    def _reset_entry(self) -> None:
        self._title = ""
        self._url = ""
        self._users = 0
        self._domain = ""
        self._description = ""
        self._category = ""
        self._date = ""
        self._tags: List[str] = []
        self._image_url: Optional[str] = None

    def _finish_entry(self) -> None:
        title = self._title.strip()
        if not title or not self._url:
            return
        self._completed.append(ListingEntry(
            title=title,
            url=self._url,
            description=self._description.strip(),
            users=self._users,
            domain=self._domain.strip(),
            category=self._category.strip(),
            date=self._date.strip(),
            tags=list(self._tags),
            image_url=self._image_url,
        ))

    def _open_element(self, tag: str, attributes: Dict[str, Optional[str]],
                      classes: FrozenSet[str], self_closing: bool = False) -> None:
        if BLOCK_SELECTOR.matches(self._ancestors, tag, classes):
            if self._collector is not Collector.IDLE:
                self._disarm()
            if self._entry_open:
                self._finish_entry()
            self._reset_entry()
            self._entry_open = True
            return

        if IMAGE_SELECTOR.matches(self._ancestors, tag, classes):
            src = attributes.get("src")
            if src:
                self._image_url = src
            return

        if self_closing or tag in VOID_ELEMENTS:
            return

        for selector, collector in TEXT_SELECTORS:
            if selector.matches(self._ancestors, tag, classes):
                if collector is Collector.TITLE:
                    href = attributes.get("href")
                    if href:
                        self._url = href
                self._arm(collector, depth=len(self._ancestors) + 1)
                return

    def _arm(self, collector: Collector, depth: int) -> None:
        if self._collector is not Collector.IDLE:
            self._disarm()
        self._collector = collector
        self._collector_depth = depth
        self._buffer = []
        self._saw_text = False

    def _end_text_node(self) -> None:
        # A collector only owns the first non-blank text node of its element.
        if self._collector is not Collector.IDLE and self._saw_text:
            self._disarm()

    def _disarm(self) -> None:
        collector, text = self._collector, "".join(self._buffer)
        self._collector = Collector.IDLE
        self._collector_depth = 0
        self._buffer = []
        self._saw_text = False

        if collector is Collector.TITLE:
            self._title += text
        elif collector is Collector.USERS:
            self._users = parse_users(text, default=self._users)
        elif collector is Collector.DOMAIN:
            self._domain += text
        elif collector is Collector.DESCRIPTION:
            self._description += text
        elif collector is Collector.DATE:
            self._category, self._date = split_category_date(text)
        elif collector is Collector.TAG:
            tag = text.strip()
            if tag:
                self._tags.append(tag)


async def iter_entries(chunks: Union[AsyncIterable[Chunk], Iterable[Chunk]]) -> AsyncIterator[ListingEntry]:
    """Yield entries in document order as soon as their block is complete."""
    extractor = ListingExtractor()
    if hasattr(chunks, "__aiter__"):
        async for chunk in chunks:
            extractor.feed_chunk(chunk)
            for entry in extractor.drain():
                yield entry
    else:
        for chunk in chunks:
            extractor.feed_chunk(chunk)
            for entry in extractor.drain():
                yield entry
    extractor.close()
    for entry in extractor.drain():
        yield entry


async def extract_entries(chunks: Union[AsyncIterable[Chunk], Iterable[Chunk]]) -> List[ListingEntry]:
    """Consume a streamed body once and return all entries."""
    return [entry async for entry in iter_entries(chunks)]


def parse_entries(html: Chunk) -> List[ListingEntry]:
    """Parse a complete document."""
    extractor = ListingExtractor()
    extractor.feed_chunk(html)
    extractor.close()
    return extractor.drain()
