"""NCX navigation document: one nav point per chapter, in insertion order."""

from __future__ import annotations

from typing import List, Sequence

from lxml import etree

from html2epub.errors import NavigationOrderError, SerializationError
from html2epub.models import NavigationPoint

NCX_NS = "http://www.daisy.org/z3986/2005/ncx/"
NCX_PATH = "OEBPS/toc.ncx"


class NavigationBuilder:
    """Accumulate navigation points and serialize them as ``toc.ncx``."""

    def __init__(self, title: str) -> None:
        self.title = title
        self._points: List[NavigationPoint] = []

    @property
    def points(self) -> Sequence[NavigationPoint]:
        return tuple(self._points)

    def __len__(self) -> int:
        return len(self._points)

    def add(self, ordinal: int, label: str, src: str) -> NavigationPoint:
        """Append the nav point for chapter ``ordinal``.

        Ordinals must arrive as 1, 2, 3... so that play order matches
        insertion order.
        """
        expected = len(self._points) + 1
        if ordinal != expected:
            raise NavigationOrderError(
                f"navigation points must be added in order: expected {expected}, got {ordinal}"
            )
        point = NavigationPoint(
            id=f"NavPoint-{ordinal}",
            play_order=ordinal,
            label=label,
            src=src,
        )
        self._points.append(point)
        return point

    def to_xml(self, uid: str) -> bytes:
        """Render the NCX document for the accumulated points."""
        try:
            root = etree.Element(f"{{{NCX_NS}}}ncx", nsmap={None: NCX_NS})
            root.set("version", "2005-1")

            head = etree.SubElement(root, f"{{{NCX_NS}}}head")
            for name, content in (
                ("dtb:uid", uid),
                ("dtb:depth", "1"),
                ("dtb:totalPageCount", "0"),
                ("dtb:maxPageNumber", "0"),
            ):
                etree.SubElement(head, f"{{{NCX_NS}}}meta", name=name, content=content)

            doc_title = etree.SubElement(root, f"{{{NCX_NS}}}docTitle")
            etree.SubElement(doc_title, f"{{{NCX_NS}}}text").text = self.title

            nav_map = etree.SubElement(root, f"{{{NCX_NS}}}navMap")
            for point in self._points:
                nav_point = etree.SubElement(
                    nav_map,
                    f"{{{NCX_NS}}}navPoint",
                    id=point.id,
                    playOrder=str(point.play_order),
                )
                nav_label = etree.SubElement(nav_point, f"{{{NCX_NS}}}navLabel")
                etree.SubElement(nav_label, f"{{{NCX_NS}}}text").text = point.label
                etree.SubElement(nav_point, f"{{{NCX_NS}}}content", src=point.src)

            return etree.tostring(
                root, xml_declaration=True, encoding="utf-8", pretty_print=True
            )
        except (ValueError, TypeError, etree.LxmlError) as exc:
            raise SerializationError(f"cannot build navigation document: {exc}") from exc
