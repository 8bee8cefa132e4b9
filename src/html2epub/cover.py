"""Rasters synthesized for every book: the title cover and the placeholder image."""

from __future__ import annotations

import io
from typing import List, Sequence, Tuple

from loguru import logger as log
from PIL import Image, ImageDraw, ImageFont

COVER_SIZE: Tuple[int, int] = (200, 320)
PLACEHOLDER_SIZE: Tuple[int, int] = (160, 120)
MARGIN = 10
AUTHOR_FONT_SIZE = 10
TITLE_FONT_SIZE = 14
AUTHOR_POSITION = (MARGIN, 10)
TITLE_POSITION = (MARGIN, 50)
UNKNOWN_AUTHOR = "unknown"

SERIF_FONTS: Sequence[str] = (
    "DejaVuSerif.ttf",
    "LiberationSerif-Regular.ttf",
    "NotoSerif-Regular.ttf",
    "FreeSerif.ttf",
    "times.ttf",
    "Times New Roman.ttf",
    "Georgia.ttf",
)


def serif_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """First serif TrueType font Pillow can find, else its bundled default."""
    for name in SERIF_FONTS:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    log.debug(f"No serif font found; using Pillow's default font at {size}px")
    return ImageFont.load_default(size)


def wrap_text(
    draw: ImageDraw.ImageDraw,
    text: str,
    font: ImageFont.FreeTypeFont | ImageFont.ImageFont,
    width: int,
) -> List[str]:
    """Greedy word wrap of ``text`` to ``width`` pixels; long words are kept whole."""
    lines: List[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}".strip()
        if current and draw.textlength(candidate, font=font) > width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


def _encode_jpeg(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=90)
    return buffer.getvalue()


def render_cover(
    title: str,
    authors: Sequence[str],
    size: Tuple[int, int] = COVER_SIZE,
) -> bytes:
    """Draw the first author and the title in black serif text on white; return JPEG bytes."""
    width, height = size
    author = authors[0] if authors else UNKNOWN_AUTHOR

    image = Image.new("RGB", (width, height), "white")
    draw = ImageDraw.Draw(image)

    draw.text(AUTHOR_POSITION, author, font=serif_font(AUTHOR_FONT_SIZE), fill="black")

    title_font = serif_font(TITLE_FONT_SIZE)
    x, y = TITLE_POSITION
    line_height = int(TITLE_FONT_SIZE * 1.3)
    for line in wrap_text(draw, title, title_font, width - 2 * MARGIN):
        if y + line_height > height - MARGIN:
            break
        draw.text((x, y), line, font=title_font, fill="black")
        y += line_height

    log.trace(f"Rendered {width}x{height} cover for {title!r} by {author!r}")
    return _encode_jpeg(image)


def render_placeholder(size: Tuple[int, int] = PLACEHOLDER_SIZE) -> bytes:
    """Grey JPEG labelled "image not found", shared by every unresolved image."""
    width, height = size
    image = Image.new("RGB", (width, height), (230, 230, 230))
    draw = ImageDraw.Draw(image)
    draw.rectangle((0, 0, width - 1, height - 1), outline=(160, 160, 160))
    font = serif_font(AUTHOR_FONT_SIZE)
    label = "image not found"
    text_width = draw.textlength(label, font=font)
    draw.text(((width - text_width) / 2, height / 2 - AUTHOR_FONT_SIZE), label, font=font, fill=(90, 90, 90))
    return _encode_jpeg(image)
