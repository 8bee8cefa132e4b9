"""The :class:`Book` state machine: open, add chapters, finalize once.

Archive entries are written in this order:

1. ``mimetype`` and ``META-INF/container.xml`` when the book is opened;
2. for each chapter, its images followed by the chapter XHTML;
3. at finalize, ``toc.ncx``, ``content.opf``, the cover, the stylesheet and
   the placeholder image.

Entries are never rewritten, so anything that depends on the full chapter
list waits for :meth:`Book.finalize`.
"""

from __future__ import annotations

import re
import uuid
from pathlib import Path
from typing import BinaryIO, List, NamedTuple, Optional, Sequence, Union

from loguru import logger as log

from html2epub.archive import PACKAGE_PATH, ArchiveWriter
from html2epub.config import Settings
from html2epub.cover import render_cover, render_placeholder
from html2epub.errors import ArchiveWriteError, BookClosedError
from html2epub.images import (
    CONTENT_DIR,
    EmbeddedImage,
    ImageLoader,
    ImageOutcome,
    ImageResolver,
)
from html2epub.manifest import COVER_ITEM, PLACEHOLDER_ITEM, STYLESHEET_ITEM, ManifestBuilder
from html2epub.markup import (
    ChapterSource,
    chapter_title,
    normalize,
    parse_markup,
    read_markup,
    serialize,
)
from html2epub.navigation import NCX_PATH, NavigationBuilder
from html2epub.stylesheet import load_stylesheet

DEFAULT_TITLE = "Untitled"
_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


class ChapterResult(NamedTuple):
    """What :meth:`Book.add_chapter` recorded for one chapter."""

    ordinal: int
    href: str
    title: str
    images: List[ImageOutcome]


def _chapter_stem(suggested_name: Optional[str]) -> str:
    if suggested_name:
        stem = Path(suggested_name.replace("\\", "/")).stem
        stem = _UNSAFE_NAME.sub("-", stem).strip("-.")
        if stem:
            return stem
    return str(uuid.uuid4())


class Book:
    """An EPUB 2 book written to ``output`` as chapters are added.

    Args:
        output: Destination path, or a writable binary stream.
        title: Book title.
        authors: Author names, first one is drawn on the cover.
        settings: Runtime settings; defaults to :meth:`Settings.from_env`.
        close_output: Whether :meth:`close` also closes a stream passed as
            ``output``. Paths are always opened and closed by the book.

    Usage:
        with Book("novel.epub", title="Novel", authors=["A. Writer"]) as book:
            book.add_chapter(html, loader, suggested_name="ch01.html")
    """

    def __init__(
        self,
        output: Union[str, Path, BinaryIO],
        title: str = DEFAULT_TITLE,
        authors: Optional[Sequence[str]] = None,
        settings: Optional[Settings] = None,
        close_output: bool = True,
        uid: Optional[str] = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.title = title
        self.authors: List[str] = list(authors or [])
        self.uid = uid or str(uuid.uuid4())
        self._stylesheet = load_stylesheet(self.settings.stylesheet)

        if isinstance(output, (str, Path)):
            try:
                self._stream: BinaryIO = open(output, "wb")
            except OSError as exc:
                raise ArchiveWriteError(f"cannot open {output}: {exc}") from exc
            self._close_output = True
        else:
            self._stream = output
            self._close_output = close_output

        try:
            self.archive = ArchiveWriter(self._stream)
            self.archive.write_mimetype()
            self.archive.write_container()
        except Exception:
            if self._close_output:
                self._stream.close()
            raise

        self.navigation = NavigationBuilder(title)
        self.manifest = ManifestBuilder()
        self.images = ImageResolver(
            self.archive, self.manifest, jpeg_quality=self.settings.jpeg_quality
        )
        self._chapter_counter = 0
        self._chapter_names: set[str] = set()
        self._finalized = False
        self._closed = False
        log.debug(f"Opened book {title!r} (uid {self.uid})")

    @property
    def chapter_count(self) -> int:
        return self._chapter_counter

    @property
    def finalized(self) -> bool:
        return self._finalized

    def _chapter_href(self, suggested_name: Optional[str], ordinal: int) -> str:
        stem = _chapter_stem(suggested_name)
        href = f"{stem}.xhtml"
        suffix = ordinal
        while href in self._chapter_names:
            href = f"{stem}-{suffix}.xhtml"
            suffix += 1
        return href

    def add_chapter(
        self,
        content: ChapterSource,
        loader: ImageLoader,
        suggested_name: Optional[str] = None,
        encoding: Optional[str] = None,
    ) -> ChapterResult:
        """Normalize one HTML chapter and write it, with its images, to the archive.

        Args:
            content: Chapter HTML as text, bytes or a stream.
            loader: Called once per ``<img src>`` to obtain the image bytes.
            suggested_name: Source file name; its stem names the chapter file.
            encoding: Encoding of byte content; defaults to the settings.

        Raises:
            BookClosedError: If the book has already been finalized.
            MarkupParseError: If the chapter cannot be decoded or parsed.
            ArchiveWriteError: If an entry cannot be written.
        """
        if self._finalized:
            raise BookClosedError(f"book {self.title!r} is finalized; cannot add chapters")

        ordinal = self._chapter_counter + 1
        soup = parse_markup(read_markup(content, encoding or self.settings.encoding))
        title = chapter_title(soup, ordinal)
        href = self._chapter_href(suggested_name, ordinal)

        normalize(soup)
        mark = self.manifest.mark()
        try:
            outcomes = self.images.resolve_all(soup, loader, ordinal)
            self.archive.write(f"{CONTENT_DIR}/{href}", serialize(soup))
        except Exception:
            # Image entries already in the archive stay there, unlisted.
            self.manifest.rollback(mark)
            log.error(f"Chapter {ordinal} {title!r} was not added")
            raise
        self.navigation.add(ordinal, title, href)
        self.manifest.add_chapter(ordinal, href)

        self._chapter_names.add(href)
        self._chapter_counter = ordinal
        embedded = sum(1 for outcome in outcomes if isinstance(outcome, EmbeddedImage))
        log.info(
            f"Added chapter {ordinal} {title!r} as {href} "
            f"({embedded}/{len(outcomes)} images embedded)"
        )
        return ChapterResult(ordinal=ordinal, href=href, title=title, images=outcomes)

    def finalize(self) -> None:
        """Write the navigation and package documents, cover, stylesheet and placeholder.

        Runs at most once; later calls do nothing.
        """
        if self._finalized:
            return
        self._finalized = True

        self.navigation.title = self.title
        self.archive.write(NCX_PATH, self.navigation.to_xml(self.uid))

        self.manifest.add_fixed_items()
        self.archive.write(
            PACKAGE_PATH, self.manifest.to_xml(self.title, self.authors, self.uid)
        )
        self.archive.write(
            f"{CONTENT_DIR}/{COVER_ITEM.href}", render_cover(self.title, self.authors)
        )
        self.archive.write(f"{CONTENT_DIR}/{STYLESHEET_ITEM.href}", self._stylesheet)
        self.archive.write(f"{CONTENT_DIR}/{PLACEHOLDER_ITEM.href}", render_placeholder())
        log.success(f"Finalized {self.title!r} with {self._chapter_counter} chapters")

    def close(self) -> None:
        """Finalize, then close the archive and the output stream the book owns."""
        if self._closed:
            return
        self._closed = True
        try:
            self.finalize()
        finally:
            try:
                self.archive.close()
            finally:
                if self._close_output:
                    self._stream.close()

    def __enter__(self) -> "Book":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            log.error(f"Closing {self.title!r} after error: {exc}")
        self.close()
