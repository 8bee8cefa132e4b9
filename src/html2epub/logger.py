from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import loguru
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.style import Style
from rich.text import Text
from rich.traceback import install as tr_install

tr_install()

__all__ = [
    "get_console",
    "get_progress",
    "get_logger",
]

_console: Console = Console(stderr=True)

LEVEL_NAMES: Tuple[str, ...] = (
    "TRACE",
    "DEBUG",
    "INFO",
    "SUCCESS",
    "WARNING",
    "ERROR",
    "CRITICAL",
)


def get_progress(console: Optional[Console] = _console) -> Progress:
    """Get a Progress instance with the provided console or the global console."""
    return Progress(
        TextColumn("[progress.description]{task.description}"),
        SpinnerColumn("simpleDots"),
        BarColumn(bar_width=None),
        TimeElapsedColumn(),
        MofNCompleteColumn(),
        console=console,
        transient=True,
    )


def get_console(
    console: Optional[Console] = None, progress: Optional[Progress] = None
) -> Console:
    """Get the provided console or the global console."""
    if console:
        return console
    if progress:
        return progress.console
    return _console


class RichSink:
    """
    A custom Loguru sink that uses Rich to print styled log messages.
    Args:
        console (Console): The Rich console to print to. Defaults to the global console.
        padding (Tuple[int, int]): Padding for the panel (top/bottom, left/right). Defaults to (0, 1).
        expand (bool): Whether the panel should expand to the console width. Defaults to False.
    """

    LEVEL_STYLES: Dict[str, Style] = {
        "TRACE": Style(italic=True),
        "DEBUG": Style(color="#aaaaaa"),
        "INFO": Style(color="#00afff"),
        "SUCCESS": Style(bold=True, color="#00ff00"),
        "WARNING": Style(italic=True, color="#ffaf00"),
        "ERROR": Style(bold=True, color="#ff5000"),
        "CRITICAL": Style(bold=True, color="#ff0000"),
    }

    # Message colours for each log level
    MSG_COLORS: Dict[str, str] = {
        "TRACE": "#dddddd",
        "DEBUG": "#bbbbbb",
        "INFO": "#72d3ff",
        "SUCCESS": "#a9ffa9",
        "WARNING": "#ffe26e",
        "ERROR": "#ffaa6e",
        "CRITICAL": "#FF6FA4",
    }

    def __init__(
        self,
        console: Optional[Console] = None,
        padding: Tuple[int, int] = (0, 1),
        expand: bool = False,
    ) -> None:
        self.console = get_console(console)
        self.padding = padding
        self.expand = expand

    def __call__(self, message: Any) -> None:
        """
        Print a loguru.Message to the Rich console as a styled panel.
        Args:
            message (Message): The loguru message to print.
        """
        record = message.record
        panel = self._build_panel(record)
        self.console.print(panel)

    def _build_panel(self, record: Any) -> Panel:
        """Helper method to build a Rich Panel for a log record.
        Args:
            record (Record): The log record.
        Returns:
            Panel: A Rich Panel containing the formatted log message.
        """
        level_name = record["level"].name
        style = self.LEVEL_STYLES.get(level_name, Style())
        title = Text(
            f" {level_name} | {record['file'].name} | Line {record['line']} ",
            style=style,
        )
        now_iso = datetime.now().isoformat(timespec="milliseconds").replace("T", " | ")
        subtitle = Text(now_iso, style="dim")
        message_text = Text(
            record["message"], style=self.MSG_COLORS.get(level_name, "#eeeeee")
        )
        return Panel(
            message_text,
            title=title,
            title_align="left",
            subtitle=subtitle,
            subtitle_align="right",
            border_style=style + Style(bold=True),
            padding=self.padding,
            expand=self.expand,
        )


def _validate_level(level: Union[str, int]) -> int:
    """
    Validate the log level and convert it to an integer.
    Args:
        level (str|int): The logging level. Can be a string (e.g., "DEBUG", "INFO", etc.) or an integer (0-50).
    Returns:
        int: The validated log level as an integer.
    Raises:
        TypeError: If the log level is not a string or an integer.
        ValueError: If the log level is not valid.
    """
    if isinstance(level, bool):
        raise TypeError(f"Log level must be a string or an integer, got {type(level)}.")
    if isinstance(level, int):
        if not (0 <= level <= 50):
            raise ValueError(
                f"Log level integer must be between 0 and 50, got {level}."
            )
        return level
    if not isinstance(level, str):
        raise TypeError(f"Log level must be a string or an integer, got {type(level)}.")
    _level = level.upper()
    if _level not in LEVEL_NAMES:
        raise ValueError(
            f"Invalid log level: {level!r}. Must be one of: {', '.join(LEVEL_NAMES)}."
        )
    match _level:
        case "TRACE":
            return 5
        case "DEBUG":
            return 10
        case "INFO":
            return 20
        case "SUCCESS":
            return 25
        case "WARNING":
            return 30
        case "ERROR":
            return 40
        case _:
            return 50


def get_logger(
    level: Union[int, str] = "SUCCESS",
    console: Optional[Console] = None,
    log_file: Optional[Path] = None,
    padding: Tuple[int, int] = (0, 1),
    expand: bool = False,
):
    """Get a configured Loguru logger with RichSink and an optional file sink."""
    resolved_level = _validate_level(level)
    resolved_console = get_console(console)
    rich_sink = RichSink(console=resolved_console, padding=padding, expand=expand)
    handlers: list[dict[str, Any]] = [
        {
            "sink": rich_sink,
            "level": resolved_level,
            "format": "{message}",
            "backtrace": True,
            "diagnose": False,
            "catch": True,
            "colorize": False,
        }
    ]
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            {
                "sink": str(log_file),
                "format": "{time:HH:mm:ss.SSS} | {file.name: ^12} | Line {line} | {level} ➤ {message}",
                "level": "TRACE",
                "backtrace": True,
                "diagnose": True,
                "catch": True,
                "mode": "w",
            }
        )
    loguru.logger.remove()
    loguru.logger.configure(handlers=handlers)

    return loguru.logger


if __name__ == "__main__":
    console = get_console()
    log = get_logger("TRACE", console=console)
    log.trace("This is a trace message.")
    log.debug("This is a debug message.")
    log.info("This is an info message.")
    log.success("This is a success message.")
    log.warning("This is a warning message.")
    log.error("This is an error message.")
    log.critical("This is a critical message.")
