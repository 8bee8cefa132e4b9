"""Command line entry point: ``html2epub CHAPTER... --title TITLE``."""

from __future__ import annotations

import argparse
import re
from pathlib import Path
from typing import List, Optional, Sequence

import requests

from html2epub.book import Book
from html2epub.config import Settings
from html2epub.errors import EpubError
from html2epub.loaders import FileImageLoader
from html2epub.logger import get_console, get_logger, get_progress

DEFAULT_TITLE = "unknown"
DEFAULT_AUTHOR = "unknown"
_UNSAFE_FILENAME = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')


def output_path_for(title: str, directory: Optional[Path] = None) -> Path:
    """``<title>.epub`` with characters that are invalid in file names replaced."""
    name = _UNSAFE_FILENAME.sub("_", title).strip(" .") or DEFAULT_TITLE
    return (directory or Path.cwd()) / f"{name}.epub"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="html2epub",
        description="Assemble HTML chapter files, in order, into one EPUB book.",
    )
    parser.add_argument("chapters", nargs="+", type=Path, help="HTML chapter files, in reading order")
    parser.add_argument("-t", "--title", default=DEFAULT_TITLE, help="book title")
    parser.add_argument(
        "-a",
        "--author",
        dest="authors",
        action="append",
        default=None,
        help="author name (repeat for several authors)",
    )
    parser.add_argument("-e", "--encoding", default=None, help="text encoding of the chapter files")
    parser.add_argument("-o", "--output", type=Path, default=None, help="output file (default: <title>.epub)")
    parser.add_argument("--stylesheet", type=Path, default=None, help="CSS file replacing the bundled stylesheet")
    parser.add_argument("--log-level", default=None, help="console log level (TRACE..CRITICAL)")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    console = get_console()
    try:
        settings = Settings.from_env(
            encoding=args.encoding,
            log_level=args.log_level,
            stylesheet=args.stylesheet,
        )
    except EpubError as exc:
        get_logger(console=console).error(str(exc))
        return 1

    log = get_logger(settings.log_level, console=console, log_file=settings.log_file)
    authors: List[str] = args.authors or [DEFAULT_AUTHOR]
    output = args.output or output_path_for(args.title)
    chapters: List[Path] = args.chapters

    try:
        with requests.Session() as session, Book(
            output, title=args.title, authors=authors, settings=settings
        ) as book:
            progress = get_progress(console)
            with progress:
                task = progress.add_task("Adding chapters...", total=len(chapters))
                for chapter in chapters:
                    loader = FileImageLoader(
                        base_dir=chapter.parent,
                        timeout=settings.http_timeout,
                        session=session,
                    )
                    book.add_chapter(
                        chapter.read_bytes(),
                        loader,
                        suggested_name=chapter.name,
                        encoding=settings.encoding,
                    )
                    progress.advance(task)
    except (EpubError, OSError) as exc:
        log.error(f"Failed to build {output}: {exc}")
        return 1

    log.success(f"Wrote {output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
