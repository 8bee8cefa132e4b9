"""Exception hierarchy for the EPUB assembly pipeline.

Only :class:`ImageError` subclasses are absorbed (per image, by
``html2epub.images``). Everything else propagates to the caller and aborts
the run.
"""

from __future__ import annotations


class EpubError(Exception):
    """Base class for every error raised by html2epub."""


class ConfigError(EpubError):
    """Raised when settings are missing or invalid."""


class ImageError(EpubError):
    """Raised when a single embedded image cannot be resolved."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class ImageLoadError(ImageError):
    """The image loader could not find or read the referenced image."""


class ImageDecodeError(ImageError):
    """The loaded bytes could not be decoded or re-encoded as JPEG."""


class MarkupParseError(EpubError):
    """Raised when a chapter cannot be decoded or parsed into a document."""


class SerializationError(EpubError):
    """Raised when the navigation or package document cannot be built."""


class DuplicateManifestIdError(SerializationError):
    """Raised when a manifest id is registered twice."""


class NavigationOrderError(SerializationError, ValueError):
    """Raised when a navigation point arrives out of chapter order."""


class ArchiveWriteError(EpubError):
    """Raised when an entry cannot be appended to the archive."""


class BookClosedError(EpubError, RuntimeError):
    """Raised when a chapter is added to a finalized book."""
