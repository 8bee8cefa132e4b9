"""Resolve ``<img>`` references of a chapter into archive entries.

Every image ends in one of two outcomes. An :class:`EmbeddedImage` has been
written to the archive and registered in the manifest. A
:class:`PlaceholderImage` points at the shared ``images/not-found.jpg``.
Load and decode failures never leave this module.
"""

from __future__ import annotations

import io
import posixpath
import uuid
from typing import BinaryIO, Callable, List, NamedTuple, Union
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Tag
from loguru import logger as log
from PIL import Image

from html2epub.archive import ArchiveWriter
from html2epub.errors import ImageDecodeError, ImageError, ImageLoadError
from html2epub.manifest import PLACEHOLDER_ITEM, ManifestBuilder
from html2epub.models import ManifestItem

CONTENT_DIR = "OEBPS"
IMAGES_DIR = "images"
PLACEHOLDER_HREF = PLACEHOLDER_ITEM.href
JPEG_EXTENSIONS = (".jpg", ".jpeg")

ImageLoader = Callable[[str], Union[bytes, BinaryIO]]


class EmbeddedImage(NamedTuple):
    """The image was stored in the archive under ``href``."""

    item: ManifestItem
    href: str


class PlaceholderImage(NamedTuple):
    """The image could not be resolved; ``href`` is the shared placeholder."""

    href: str
    reason: str


ImageOutcome = Union[EmbeddedImage, PlaceholderImage]


def source_extension(source: str) -> str:
    """Lower-cased extension of the path part of ``source`` (``""`` if none)."""
    path = urlsplit(source.replace("\\", "/")).path
    return posixpath.splitext(path)[1].lower()


def to_jpeg(data: bytes, quality: int = 90) -> bytes:
    """Decode ``data`` with Pillow and re-encode it as JPEG.

    Transparent images are flattened onto white.
    """
    with Image.open(io.BytesIO(data)) as image:
        image.load()
        if image.mode in ("RGBA", "LA") or (
            image.mode == "P" and "transparency" in image.info
        ):
            rgba = image.convert("RGBA")
            flattened = Image.new("RGB", rgba.size, (255, 255, 255))
            flattened.paste(rgba, mask=rgba.getchannel("A"))
        elif image.mode not in ("RGB", "L"):
            flattened = image.convert("RGB")
        else:
            flattened = image.copy()
    buffer = io.BytesIO()
    flattened.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def _read(source: str, loader: ImageLoader) -> bytes:
    """Call ``loader`` once for ``source`` and return the full payload."""
    try:
        payload = loader(source)
        if isinstance(payload, (bytes, bytearray)):
            return bytes(payload)
        try:
            data = payload.read()
        finally:
            payload.close()
    except ImageLoadError:
        raise
    except FileNotFoundError as exc:
        raise ImageLoadError(source, "not found") from exc
    except Exception as exc:
        raise ImageLoadError(source, str(exc) or type(exc).__name__) from exc
    if not isinstance(data, (bytes, bytearray)):
        raise ImageLoadError(source, f"loader returned {type(data).__name__}, not bytes")
    return bytes(data)


class ImageResolver:
    """Embed the images of a chapter, falling back to the shared placeholder."""

    def __init__(
        self,
        archive: ArchiveWriter,
        manifest: ManifestBuilder,
        jpeg_quality: int = 90,
    ) -> None:
        self.archive = archive
        self.manifest = manifest
        self.jpeg_quality = jpeg_quality

    def _prepare(self, source: str, loader: ImageLoader) -> tuple[str, bytes]:
        """Load (and, if needed, transcode) ``source``; return stored href and bytes."""
        extension = source_extension(source)
        data = _read(source, loader)
        if extension in JPEG_EXTENSIONS:
            return f"{IMAGES_DIR}/{uuid.uuid4()}{extension}", data
        try:
            jpeg = to_jpeg(data, self.jpeg_quality)
        except Exception as exc:
            raise ImageDecodeError(source, str(exc) or type(exc).__name__) from exc
        return f"{IMAGES_DIR}/{uuid.uuid4()}.jpg", jpeg

    def resolve(
        self, source: str, loader: ImageLoader, ordinal: int, index: int
    ) -> ImageOutcome:
        """Resolve image ``index`` of chapter ``ordinal``.

        Archive write errors are not image failures and propagate.
        """
        try:
            href, data = self._prepare(source, loader)
        except ImageError as exc:
            log.warning(f"Chapter {ordinal}, image {index}: {exc}; using placeholder")
            return PlaceholderImage(href=PLACEHOLDER_HREF, reason=str(exc))

        self.archive.write(f"{CONTENT_DIR}/{href}", data)
        item = self.manifest.add_image(ordinal, index, href)
        log.debug(f"Chapter {ordinal}, image {index}: stored {source} as {href}")
        return EmbeddedImage(item=item, href=href)

    def resolve_all(
        self, soup: BeautifulSoup, loader: ImageLoader, ordinal: int
    ) -> List[ImageOutcome]:
        """Rewrite every ``<img>`` of ``soup`` and return one outcome per image."""
        outcomes: List[ImageOutcome] = []
        for index, img in enumerate(soup.find_all("img"), start=1):
            if not isinstance(img, Tag):
                continue
            source = img.get("src")
            img.attrs = {}
            if not source:
                outcome: ImageOutcome = PlaceholderImage(
                    href=PLACEHOLDER_HREF, reason="missing src attribute"
                )
            else:
                outcome = self.resolve(str(source), loader, ordinal, index)
            img["src"] = outcome.href
            outcomes.append(outcome)
        return outcomes
