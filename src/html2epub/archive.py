"""Append-only zip container used as the EPUB archive.

Entries are written once each, in call order, and never revisited. The
``mimetype`` entry is stored uncompressed; everything else is deflated.
"""

from __future__ import annotations

import zipfile
from typing import BinaryIO, List, Set

from loguru import logger as log

from html2epub.errors import ArchiveWriteError

MIMETYPE = "application/epub+zip"
MIMETYPE_PATH = "mimetype"
CONTAINER_PATH = "META-INF/container.xml"
PACKAGE_PATH = "OEBPS/content.opf"

CONTAINER_XML = (
    '<?xml version="1.0" encoding="utf-8"?>\n'
    '<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">\n'
    "  <rootfiles>\n"
    f'    <rootfile full-path="{PACKAGE_PATH}" media-type="application/oebps-package+xml"/>\n'
    "  </rootfiles>\n"
    "</container>\n"
)


class ArchiveWriter:
    """Write-once zip entries over a binary stream.

    The writer does not own ``stream``; closing the writer finishes the zip
    directory and leaves the stream open for its owner.
    """

    def __init__(self, stream: BinaryIO) -> None:
        try:
            self._zip = zipfile.ZipFile(stream, mode="w")
        except (OSError, ValueError) as exc:
            raise ArchiveWriteError(f"cannot open archive: {exc}") from exc
        self._names: Set[str] = set()
        self._order: List[str] = []
        self._closed = False

    @property
    def names(self) -> List[str]:
        """Entry names in the order they were written."""
        return list(self._order)

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, name: str, data: bytes, compress: bool = True) -> None:
        """Append ``data`` as a new entry called ``name``."""
        if self._closed:
            raise ArchiveWriteError(f"archive is closed; cannot write {name}")
        if name in self._names:
            raise ArchiveWriteError(f"entry already written: {name}")
        info = zipfile.ZipInfo(name, date_time=(1980, 1, 1, 0, 0, 0))
        info.compress_type = zipfile.ZIP_DEFLATED if compress else zipfile.ZIP_STORED
        info.external_attr = 0o644 << 16
        try:
            self._zip.writestr(info, data)
        except (OSError, ValueError, zipfile.BadZipFile) as exc:
            raise ArchiveWriteError(f"failed to write {name}: {exc}") from exc
        self._names.add(name)
        self._order.append(name)
        log.trace(f"Wrote archive entry {name} ({len(data)} bytes)")

    def write_text(self, name: str, text: str) -> None:
        self.write(name, text.encode("utf-8"))

    def write_mimetype(self) -> None:
        """Write the uncompressed ``mimetype`` marker; must be the first entry."""
        if self._order:
            raise ArchiveWriteError("mimetype must be the first archive entry")
        self.write(MIMETYPE_PATH, MIMETYPE.encode("ascii"), compress=False)

    def write_container(self) -> None:
        """Write ``META-INF/container.xml`` pointing at the package document."""
        self.write_text(CONTAINER_PATH, CONTAINER_XML)

    def close(self) -> None:
        if self._closed:
            return
        try:
            self._zip.close()
        except (OSError, ValueError) as exc:
            raise ArchiveWriteError(f"failed to close archive: {exc}") from exc
        finally:
            self._closed = True
        log.debug(f"Closed archive with {len(self._order)} entries")

    def __enter__(self) -> "ArchiveWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
