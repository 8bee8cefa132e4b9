from dotenv import load_dotenv
from rich.traceback import install as tr_install

from html2epub.logger import get_console, get_logger, get_progress

_console = get_console()
log = get_logger(console=_console)

tr_install(console=_console)
load_dotenv()

from html2epub.book import Book, ChapterResult  # noqa: E402
from html2epub.config import Settings  # noqa: E402
from html2epub.images import EmbeddedImage, PlaceholderImage  # noqa: E402
from html2epub.loaders import FileImageLoader  # noqa: E402

__all__ = [
    "Book",
    "ChapterResult",
    "EmbeddedImage",
    "FileImageLoader",
    "PlaceholderImage",
    "Settings",
    "get_console",
    "get_logger",
    "get_progress",
    "log",
]
