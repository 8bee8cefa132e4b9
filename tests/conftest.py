from __future__ import annotations

import io
import zipfile
from typing import Callable, Dict, List, Sequence, Tuple

import pytest
from PIL import Image

from html2epub.book import Book
from html2epub.config import Settings

NS = {
    "ncx": "http://www.daisy.org/z3986/2005/ncx/",
    "opf": "http://www.idpf.org/2007/opf",
    "dc": "http://purl.org/dc/elements/1.1/",
    "x": "http://www.w3.org/1999/xhtml",
}


def image_bytes(fmt: str = "PNG", size: Tuple[int, int] = (8, 6), mode: str = "RGB") -> bytes:
    color = (200, 30, 30, 128) if mode == "RGBA" else (200, 30, 30)
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


class DictLoader:
    """Image loader backed by a mapping; records every call."""

    def __init__(self, images: Dict[str, bytes]) -> None:
        self.images = images
        self.calls: List[str] = []

    def __call__(self, source: str) -> bytes:
        self.calls.append(source)
        if source not in self.images:
            raise FileNotFoundError(source)
        return self.images[source]


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def png_bytes() -> bytes:
    return image_bytes("PNG")


@pytest.fixture
def build_epub(settings: Settings):
    """Build a book from ``chapters`` in memory and return it as an open ZipFile."""

    def _build(
        chapters: Sequence[str],
        loader: Callable[[str], bytes] | None = None,
        title: str = "Test Book",
        authors: Sequence[str] = ("Jane Roe",),
    ) -> zipfile.ZipFile:
        output = io.BytesIO()
        with Book(output, title=title, authors=authors, settings=settings, close_output=False) as book:
            for number, chapter in enumerate(chapters, start=1):
                book.add_chapter(chapter, loader or DictLoader({}), suggested_name=f"ch{number}.html")
        output.seek(0)
        return zipfile.ZipFile(output)

    return _build