"""The stylesheet every chapter links to (``OEBPS/stylesheet.css``)."""

from __future__ import annotations

from importlib import resources
from pathlib import Path
from typing import Optional

import cssutils
from loguru import logger as log

from html2epub.errors import ConfigError

cssutils.log.setLevel("CRITICAL")

BUNDLED_STYLESHEET = "stylesheet.css"


def bundled_css() -> str:
    """Text of the stylesheet shipped with the package."""
    return (
        resources.files("html2epub")
        .joinpath("resources")
        .joinpath(BUNDLED_STYLESHEET)
        .read_text(encoding="utf-8")
    )


def normalize_css(css_text: str) -> bytes:
    """Parse ``css_text`` with cssutils and return it re-serialized as UTF-8.

    Rules cssutils cannot parse are dropped from the output.
    """
    sheet = cssutils.parseString(css_text)
    log.trace(f"Parsed stylesheet with {len(sheet.cssRules)} rules")
    css = sheet.cssText
    if isinstance(css, str):
        css = css.encode("utf-8")
    return css + b"\n" if css and not css.endswith(b"\n") else css


def load_stylesheet(path: Optional[Path] = None) -> bytes:
    """Stylesheet bytes from ``path`` when given, else the bundled stylesheet."""
    if path is None:
        return normalize_css(bundled_css())
    try:
        css_text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"cannot read stylesheet {path}: {exc}") from exc
    log.debug(f"Using stylesheet {path}")
    return normalize_css(css_text)
