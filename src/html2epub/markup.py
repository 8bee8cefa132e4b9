"""Turn loosely-formed chapter HTML into XHTML suitable for an EPUB.

Cleanup runs in two passes:

* a tree pass over the BeautifulSoup document: ``<body>`` and ``<html>``
  lose their attributes, anchors become underlined ``<div>`` blocks, every
  ``<link>`` is dropped and a single stylesheet link is injected into
  ``<head>``;
* a textual pass over the serialized XHTML that strips ``<script>`` and
  ``<meta>`` tags, comments and CDATA sections, and puts the XHTML namespace
  on the bare ``<html>`` tag.

The textual pass is not aware of document structure. Text that merely looks
like one of those tokens is stripped as well.
"""

from __future__ import annotations

import re
from typing import IO, Union

from bs4 import BeautifulSoup, Tag
from bs4.dammit import EntitySubstitution
from bs4.element import Declaration, Doctype, ProcessingInstruction
from bs4.formatter import HTMLFormatter
from loguru import logger as log

from html2epub.errors import MarkupParseError

XHTML_NS = "http://www.w3.org/1999/xhtml"
STYLESHEET_HREF = "stylesheet.css"
UNDERLINE_STYLE = "text-decoration:underline"
XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>\n'

# Like "minimal", but script and style text is escaped too.
XHTML_FORMATTER = HTMLFormatter(
    entity_substitution=EntitySubstitution.substitute_xml,
    cdata_containing_tags=set(),
)

ChapterSource = Union[str, bytes, IO[str], IO[bytes]]

SCRIPT_RE = re.compile(r"</?script\b[^>]*>", re.IGNORECASE)
META_RE = re.compile(r"</?meta\b[^>]*>", re.IGNORECASE)
COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
CDATA_RE = re.compile(r"<!\[CDATA\[.*?\]\]>", re.DOTALL)


def read_markup(content: ChapterSource, encoding: str = "utf-8") -> str:
    """Return chapter text from a string, raw bytes or a (text or binary) stream.

    Raises:
        MarkupParseError: If bytes cannot be decoded with ``encoding``.
    """
    data = content.read() if hasattr(content, "read") else content
    if isinstance(data, bytes):
        try:
            return data.decode(encoding)
        except (UnicodeDecodeError, LookupError) as exc:
            raise MarkupParseError(f"cannot decode chapter as {encoding}: {exc}") from exc
    if not isinstance(data, str):
        raise MarkupParseError(f"unsupported chapter content: {type(data).__name__}")
    return data


def parse_markup(text: str) -> BeautifulSoup:
    """Parse tolerant HTML into a tree rooted at ``<html>``.

    Tag names are lower-cased by the parser and whitespace is preserved.
    """
    try:
        soup = BeautifulSoup(text, "lxml")
    except Exception as exc:
        raise MarkupParseError(f"cannot parse chapter markup: {exc}") from exc
    if not isinstance(soup.html, Tag):
        raise MarkupParseError("chapter has no document element")
    return soup


def chapter_title(soup: BeautifulSoup, ordinal: int) -> str:
    """Text of the first ``<title>``, or the chapter ordinal when there is none."""
    title = soup.find("title")
    if isinstance(title, Tag):
        text = " ".join(title.get_text().split())
        if text:
            return text
    return str(ordinal)


def clean_up_tags(soup: BeautifulSoup) -> None:
    """Strip ``<body>`` attributes and replace anchors with underlined divs."""
    if isinstance(soup.body, Tag):
        soup.body.attrs = {}

    anchors = soup.find_all("a")
    for anchor in anchors:
        anchor.name = "div"
        anchor.attrs = {"style": UNDERLINE_STYLE}
    if anchors:
        log.trace(f"Replaced {len(anchors)} anchors with underlined divs")


def add_stylesheet_link(soup: BeautifulSoup, href: str = STYLESHEET_HREF) -> None:
    """Replace every ``<link>`` with a single stylesheet link inside ``<head>``."""
    for link in soup.find_all("link"):
        link.decompose()

    html = soup.html
    html.attrs = {}

    head = soup.head
    if not isinstance(head, Tag):
        head = soup.new_tag("head")
        html.insert(0, head)
    head.append(
        soup.new_tag("link", attrs={"href": href, "rel": "stylesheet", "type": "text/css"})
    )


def normalize(soup: BeautifulSoup) -> None:
    """Apply the tree pass to ``soup`` in place."""
    clean_up_tags(soup)
    add_stylesheet_link(soup)


def sanitize_xhtml(text: str) -> str:
    """Textual pass over serialized XHTML.

    Removes ``<script>``/``</script>`` and ``<meta>`` tags, comments and
    CDATA sections, and gives a bare ``<html>`` tag the XHTML namespace.
    """
    text = text.replace("<html>", f'<html xmlns="{XHTML_NS}">')
    text = SCRIPT_RE.sub("", text)
    text = META_RE.sub("", text)
    text = COMMENT_RE.sub("", text)
    text = CDATA_RE.sub("", text)
    return text


def serialize(soup: BeautifulSoup) -> bytes:
    """Serialize ``soup`` as UTF-8 XHTML and run the textual pass over it.

    Text is escaped as XML everywhere, including inside ``<script>`` and
    ``<style>``.
    """
    for node in list(soup.contents):
        if isinstance(node, (Doctype, Declaration, ProcessingInstruction)):
            node.extract()
    body = soup.decode(formatter=XHTML_FORMATTER).lstrip()
    return (XML_DECLARATION + sanitize_xhtml(body)).encode("utf-8")
