import io
import zipfile

import pytest
from lxml import etree
from PIL import Image

from html2epub.book import Book
from html2epub.errors import ArchiveWriteError, BookClosedError, MarkupParseError
from html2epub.images import EmbeddedImage, PlaceholderImage
from html2epub.markup import UNDERLINE_STYLE

from conftest import NS, DictLoader

FIXED_TAIL = [
    "OEBPS/toc.ncx",
    "OEBPS/content.opf",
    "OEBPS/cover.jpg",
    "OEBPS/stylesheet.css",
    "OEBPS/images/not-found.jpg",
]


def chapter(title=None, body="<p>text</p>"):
    head = f"<head><title>{title}</title></head>" if title else ""
    return f"<html>{head}<body>{body}</body></html>"


def test_example_chapter(build_epub, png_bytes):
    source = '<html><head><title>Hi</title></head><body><a href="x">go</a><img src="a.png"></body></html>'
    loader = DictLoader({"a.png": png_bytes})

    zf = build_epub([source], loader)

    root = etree.fromstring(zf.read("OEBPS/ch1.xhtml"))
    assert root.findall(".//x:a", NS) == []
    divs = root.findall(".//x:div", NS)
    assert len(divs) == 1
    assert divs[0].text == "go"
    assert divs[0].get("style") == UNDERLINE_STYLE
    images = root.findall(".//x:img", NS)
    assert len(images) == 1
    src = images[0].get("src")
    assert src.startswith("images/") and src.endswith(".jpg") and src != "a.png"
    with Image.open(io.BytesIO(zf.read(f"OEBPS/{src}"))) as image:
        assert image.format == "JPEG"

    ncx = etree.fromstring(zf.read("OEBPS/toc.ncx"))
    assert ncx.findtext("ncx:navMap/ncx:navPoint/ncx:navLabel/ncx:text", namespaces=NS) == "Hi"


def test_archive_layout_and_order(build_epub, png_bytes):
    loader = DictLoader({"a.png": png_bytes})
    zf = build_epub([chapter("One", '<img src="a.png">'), chapter("Two")], loader)

    names = zf.namelist()
    assert names[:2] == ["mimetype", "META-INF/container.xml"]
    assert names[2].startswith("OEBPS/images/") and names[2].endswith(".jpg")
    assert names[3:5] == ["OEBPS/ch1.xhtml", "OEBPS/ch2.xhtml"]
    assert names[5:] == FIXED_TAIL
    assert zf.read("mimetype") == b"application/epub+zip"
    assert zf.getinfo("mimetype").compress_type == zipfile.ZIP_STORED
    assert zf.testzip() is None


def test_spine_and_navigation_follow_chapter_order(build_epub):
    titles = ["Gamma", None, "Alpha", "Beta"]
    zf = build_epub([chapter(t) for t in titles])

    opf = etree.fromstring(zf.read("OEBPS/content.opf"))
    idrefs = [ref.get("idref") for ref in opf.findall("opf:spine/opf:itemref", NS)]
    assert idrefs == ["id1", "id2", "id3", "id4"]
    hrefs = {i.get("id"): i.get("href") for i in opf.findall("opf:manifest/opf:item", NS)}
    assert [hrefs[idref] for idref in idrefs] == ["ch1.xhtml", "ch2.xhtml", "ch3.xhtml", "ch4.xhtml"]

    ncx = etree.fromstring(zf.read("OEBPS/toc.ncx"))
    points = ncx.findall("ncx:navMap/ncx:navPoint", NS)
    assert [int(p.get("playOrder")) for p in points] == [1, 2, 3, 4]
    assert [p.findtext("ncx:navLabel/ncx:text", namespaces=NS) for p in points] == ["Gamma", "2", "Alpha", "Beta"]
    assert ncx.findtext("ncx:docTitle/ncx:text", namespaces=NS) == "Test Book"


def test_failed_image_uses_placeholder_without_manifest_item(build_epub):
    loader = DictLoader({})
    zf = build_epub([chapter("One", '<img src="missing.png"><img>')], loader)

    root = etree.fromstring(zf.read("OEBPS/ch1.xhtml"))
    assert [img.get("src") for img in root.findall(".//x:img", NS)] == ["images/not-found.jpg"] * 2

    opf = etree.fromstring(zf.read("OEBPS/content.opf"))
    ids = [i.get("id") for i in opf.findall("opf:manifest/opf:item", NS)]
    assert ids == ["id1", "ncx", "cover", "stylesheet", "notfound"]
    assert len(ids) == len(set(ids))
    assert loader.calls == ["missing.png"]
    with Image.open(io.BytesIO(zf.read("OEBPS/images/not-found.jpg"))) as image:
        assert image.format == "JPEG"


def test_jpeg_images_are_copied_byte_for_byte(build_epub):
    original = b"\xff\xd8\xff\xe0 raw jpeg payload"
    zf = build_epub([chapter("One", '<img src="photo.jpg">')], DictLoader({"photo.jpg": original}))

    src = etree.fromstring(zf.read("OEBPS/ch1.xhtml")).find(".//x:img", NS).get("src")
    assert zf.read(f"OEBPS/{src}") == original


def test_script_meta_comment_and_cdata_do_not_survive(build_epub):
    source = (
        "<html><head><meta http-equiv='Content-Type' content='text/html'>"
        "<script>alert(1)</script><title>S</title></head>"
        "<body><!-- hidden --><p>shown</p><![CDATA[ x ]]></body></html>"
    )
    data = build_epub([source]).read("OEBPS/ch1.xhtml")

    for marker in (b"<script", b"<meta", b"<!--", b"<![CDATA["):
        assert marker not in data


def test_cover_stylesheet_and_metadata(build_epub):
    zf = build_epub([chapter("One")], title="Cover Test", authors=["Ann", "Bo"])

    with Image.open(io.BytesIO(zf.read("OEBPS/cover.jpg"))) as image:
        assert image.format == "JPEG"
        assert image.size == (200, 320)
    assert b"body" in zf.read("OEBPS/stylesheet.css")

    opf = etree.fromstring(zf.read("OEBPS/content.opf"))
    assert opf.findtext("opf:metadata/dc:title", namespaces=NS) == "Cover Test"
    creators = opf.findall("opf:metadata/dc:creator", NS)
    assert [c.text for c in creators] == ["Ann", "Bo"]
    uid = opf.findtext("opf:metadata/dc:identifier", namespaces=NS)
    ncx = etree.fromstring(zf.read("OEBPS/toc.ncx"))
    assert ncx.find("ncx:head/ncx:meta[@name='dtb:uid']", NS).get("content") == uid


def test_finalize_is_idempotent(settings):
    output = io.BytesIO()
    book = Book(output, title="Twice", settings=settings, close_output=False)
    book.add_chapter(chapter("One"), DictLoader({}))
    book.finalize()
    names = book.archive.names
    book.finalize()
    assert book.archive.names == names
    assert names[-5:] == FIXED_TAIL
    book.close()

    output.seek(0)
    assert zipfile.ZipFile(output).namelist() == names


def test_closing_without_finalize_finalizes_once(settings):
    output = io.BytesIO()
    with Book(output, title="Implicit", settings=settings, close_output=False) as book:
        book.add_chapter(chapter("One"), DictLoader({}))
        assert not book.finalized
    assert book.finalized
    assert not output.closed

    output.seek(0)
    names = zipfile.ZipFile(output).namelist()
    assert names.count("OEBPS/toc.ncx") == 1
    assert names.count("OEBPS/content.opf") == 1


def test_book_owns_path_output(settings, tmp_path):
    path = tmp_path / "out.epub"
    with Book(path, title="On Disk", settings=settings) as book:
        book.add_chapter(chapter("One"), DictLoader({}))
    assert book._stream.closed
    with zipfile.ZipFile(path) as zf:
        assert zf.namelist()[-5:] == FIXED_TAIL


def test_adding_after_finalize_fails(settings):
    book = Book(io.BytesIO(), settings=settings)
    book.finalize()
    with pytest.raises(BookClosedError):
        book.add_chapter(chapter("Late"), DictLoader({}))
    book.close()


def test_markup_errors_abort_the_chapter(settings):
    book = Book(io.BytesIO(), settings=settings, close_output=False)
    with pytest.raises(MarkupParseError):
        book.add_chapter(b"\xff\xfe\xfa", DictLoader({}), encoding="utf-8")
    assert book.chapter_count == 0
    assert len(book.navigation) == 0
    book.close()


def test_chapter_results_and_names(settings, png_bytes):
    book = Book(io.BytesIO(), settings=settings)
    loader = DictLoader({"a.png": png_bytes})

    first = book.add_chapter(chapter("A", '<img src="a.png"><img src="b.png">'), loader, suggested_name="dir/Part 1.html")
    second = book.add_chapter(chapter("B"), loader, suggested_name="other/Part 1.htm")
    third = book.add_chapter(chapter("C"), loader)

    assert (first.ordinal, first.href, first.title) == (1, "Part-1.xhtml", "A")
    assert [type(o) for o in first.images] == [EmbeddedImage, PlaceholderImage]
    assert second.href == "Part-1-2.xhtml"
    assert third.href.endswith(".xhtml") and len(third.href) == len("00000000-0000-0000-0000-000000000000.xhtml")
    assert book.chapter_count == 3
    book.close()


def test_encoded_chapter_bytes(settings):
    output = io.BytesIO()
    with Book(output, settings=settings, close_output=False) as book:
        result = book.add_chapter(
            chapter("Глава").encode("cp1251"), DictLoader({}), encoding="cp1251"
        )
    assert result.title == "Глава"


class FlakyStream(io.BytesIO):
    broken = False

    def write(self, data):
        if self.broken:
            raise OSError("disk full")
        return super().write(data)


def test_failed_chapter_leaves_the_book_usable(settings, png_bytes):
    output = FlakyStream()
    book = Book(output, title="Recovering", settings=settings, close_output=False)

    def failing_loader(source):
        if source == "b.png":
            output.broken = True
        return png_bytes

    with pytest.raises(ArchiveWriteError, match="disk full"):
        book.add_chapter(chapter("Lost", '<img src="a.png"><img src="b.png">'), failing_loader)
    assert book.chapter_count == 0
    assert len(book.navigation) == 0
    assert book.manifest.items == ()

    output.broken = False
    result = book.add_chapter(chapter("Kept", '<img src="a.png">'), DictLoader({"a.png": png_bytes}))
    assert result.ordinal == 1
    assert isinstance(result.images[0], EmbeddedImage)
    book.close()

    output.seek(0)
    with zipfile.ZipFile(output) as zf:
        opf = etree.fromstring(zf.read("OEBPS/content.opf"))
        ids = [i.get("id") for i in opf.findall("opf:manifest/opf:item", NS)]
        assert ids == ["imageId1_1", "id1", "ncx", "cover", "stylesheet", "notfound"]
        assert [r.get("idref") for r in opf.findall("opf:spine/opf:itemref", NS)] == ["id1"]
        ncx = etree.fromstring(zf.read("OEBPS/toc.ncx"))
        labels = [t.text for t in ncx.findall("ncx:navMap/ncx:navPoint/ncx:navLabel/ncx:text", NS)]
        assert labels == ["Kept"]
