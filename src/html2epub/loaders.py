"""Image loaders handed to :meth:`html2epub.book.Book.add_chapter`."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

import requests
from loguru import logger as log

from html2epub.errors import ImageLoadError

HTTP_HEADERS: Dict[str, str] = {
    "User-Agent": "Mozilla/5.0 (compatible; html2epub/0.1)"
}
REQUEST_TIMEOUT: float = 30.0


class FileImageLoader:
    """Load image bytes from local paths or ``http(s)`` URLs.

    Relative paths are resolved against ``base_dir`` (normally the directory
    of the chapter file). ``file://`` URIs are accepted as well.
    """

    def __init__(
        self,
        base_dir: Optional[Path] = None,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
        self.timeout = timeout
        self.session = session or requests.Session()

    def __call__(self, source: str) -> bytes:
        parsed = urlparse(source)
        if parsed.scheme in ("http", "https"):
            return self._fetch(source)
        if parsed.scheme == "file":
            return self._read_file(Path(url2pathname(unquote(parsed.path))))
        if parsed.scheme and len(parsed.scheme) > 1:
            raise ImageLoadError(source, f"unsupported scheme {parsed.scheme!r}")
        return self._read_file(self.base_dir / unquote(source))

    def _read_file(self, path: Path) -> bytes:
        log.trace(f"Reading image {path}")
        # FileNotFoundError and other OSErrors are reported by the resolver.
        return path.read_bytes()

    def _fetch(self, url: str) -> bytes:
        log.trace(f"Fetching image {url}")
        try:
            response = self.session.get(url, headers=HTTP_HEADERS, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ImageLoadError(url, str(exc)) from exc
        return response.content
