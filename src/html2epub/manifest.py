"""Package document (OPF 2.0): metadata, manifest, spine and guide."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import pendulum
from lxml import etree
from lxml.builder import ElementMaker

from html2epub.errors import DuplicateManifestIdError, SerializationError
from html2epub.models import ManifestItem, SpineItemRef

OPF_NS = "http://www.idpf.org/2007/opf"
DC_NS = "http://purl.org/dc/elements/1.1/"
# lxml mis-assigns attribute prefixes when the default namespace and "opf"
# share a URI; the default one is suffixed while building and restored after.
LXML_WORKAROUND = "lxml-bug-workaround"
NSMAP = {None: OPF_NS + LXML_WORKAROUND, "dc": DC_NS, "opf": OPF_NS}

UID_ID = "uidParam"
LANGUAGE = "ru"
DATE_FORMAT = "YYYY-MM-DD[T]HH:mm:ss"

NCX_ITEM = ManifestItem(id="ncx", href="toc.ncx", media_type="application/x-dtbncx+xml")
COVER_ITEM = ManifestItem(id="cover", href="cover.jpg", media_type="image/jpeg")
STYLESHEET_ITEM = ManifestItem(id="stylesheet", href="stylesheet.css", media_type="text/css")
PLACEHOLDER_ITEM = ManifestItem(
    id="notfound", href="images/not-found.jpg", media_type="image/jpeg"
)
FIXED_ITEMS = (NCX_ITEM, COVER_ITEM, STYLESHEET_ITEM, PLACEHOLDER_ITEM)

IMAGE_MEDIA_TYPES: Dict[str, str] = {
    "gif": "image/gif",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "bmp": "image/bmp",
    "png": "image/png",
}


def image_media_type(path: str) -> str:
    """Media type for an image path, judged by extension; ``image/jpeg`` by default."""
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return "image/jpeg"
    extension = name.rsplit(".", 1)[-1].lower()
    return IMAGE_MEDIA_TYPES.get(extension, "image/jpeg")


class ManifestBuilder:
    """Accumulate manifest items and spine references in insertion order."""

    def __init__(self) -> None:
        self._items: List[ManifestItem] = []
        self._ids: set[str] = set()
        self._spine: List[SpineItemRef] = []

    @property
    def items(self) -> Sequence[ManifestItem]:
        return tuple(self._items)

    @property
    def spine(self) -> Sequence[SpineItemRef]:
        return tuple(self._spine)

    def add_item(self, item: ManifestItem) -> ManifestItem:
        if item.id in self._ids:
            raise DuplicateManifestIdError(f"manifest id already registered: {item.id}")
        self._ids.add(item.id)
        self._items.append(item)
        return item

    def mark(self) -> int:
        """Position to hand to :meth:`rollback`."""
        return len(self._items)

    def rollback(self, mark: int) -> None:
        """Forget every item registered after ``mark``."""
        for item in self._items[mark:]:
            self._ids.discard(item.id)
        del self._items[mark:]

    def add_chapter(self, ordinal: int, href: str) -> ManifestItem:
        """Register chapter ``ordinal`` in the manifest and append it to the spine."""
        item = self.add_item(
            ManifestItem(id=f"id{ordinal}", href=href, media_type="application/xhtml+xml")
        )
        self._spine.append(SpineItemRef(idref=item.id))
        return item

    def add_image(self, ordinal: int, index: int, href: str) -> ManifestItem:
        """Register image ``index`` of chapter ``ordinal``."""
        return self.add_item(
            ManifestItem(
                id=f"imageId{ordinal}_{index}",
                href=href,
                media_type=image_media_type(href),
            )
        )

    def add_fixed_items(self) -> None:
        """Register the navigation document, cover, stylesheet and placeholder."""
        for item in FIXED_ITEMS:
            self.add_item(item)

    def to_xml(
        self,
        title: str,
        authors: Sequence[str],
        uid: str,
        timestamp: Optional[str] = None,
    ) -> bytes:
        """Render the package document.

        Args:
            title: Book title, also used as the description.
            authors: One ``dc:creator`` is written per name.
            uid: Unique identifier shared with the navigation document.
            timestamp: ``dc:date`` value; defaults to the current local time.
        """
        if timestamp is None:
            timestamp = pendulum.now().format(DATE_FORMAT)
        try:
            opf = ElementMaker(namespace=NSMAP[None], nsmap=NSMAP)
            dc = ElementMaker(namespace=DC_NS, nsmap=NSMAP)

            metadata = opf.metadata(
                dc.description(title),
                dc.title(title),
                opf.meta(name="cover", content="cover"),
                dc.language(LANGUAGE),
                dc.identifier(uid, id=UID_ID),
            )
            for author in authors:
                metadata.append(
                    dc.creator(
                        author,
                        {f"{{{OPF_NS}}}file-as": author, f"{{{OPF_NS}}}role": "aut"},
                    )
                )
            metadata.append(dc.date(timestamp))

            manifest = opf.manifest(
                *[
                    opf.item({"id": item.id, "href": item.href, "media-type": item.media_type})
                    for item in self._items
                ]
            )
            spine = opf.spine(
                *[opf.itemref(idref=ref.idref) for ref in self._spine],
                toc=NCX_ITEM.id,
            )
            guide = opf.guide(
                opf.reference(href=COVER_ITEM.href, type="cover", title="Cover")
            )
            package = opf.package(
                metadata,
                manifest,
                spine,
                guide,
                version="2.0",
                **{"unique-identifier": UID_ID},
            )
            text = etree.tostring(package, encoding="unicode", pretty_print=True)
        except (ValueError, TypeError, etree.LxmlError) as exc:
            raise SerializationError(f"cannot build package document: {exc}") from exc
        text = text.replace(LXML_WORKAROUND, "")
        return ('<?xml version="1.0" encoding="utf-8"?>\n' + text).encode("utf-8")
