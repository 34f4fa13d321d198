"""Logging and diagnostics output for Soar.

Two channels are provided:

- ``setup_logging`` configures an optional file logger. When enabled
  (via --log-file), logs are written only to that file, never stdout.
- ``Diagnostics`` is the per-invocation output handle. It prints leveled
  messages to stderr, command results to stdout, and mirrors every
  message into the file logger. It is created once by the CLI and passed
  explicitly to whatever needs to report.
"""

import logging
import sys
from pathlib import Path

from rich.console import Console, RenderableType
from rich.markup import escape

from .config import LogOptions
from .errors import CommandError

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(
    log_file: Path | str | None = None,
    log_level: str = "WARNING",
    name: str = "soar",
) -> logging.Logger:
    """Point the soar logger at a log file, or silence it.

    Diagnostics mirror every message into this logger, so with --log-file
    the file holds the whole invocation trace, including messages that
    --quiet hides from the terminal. Nothing is ever logged to stdout.

    Args:
        log_file: Log file path; None disables file logging.
        log_level: Level name; unknown names fall back to WARNING.
        name: Logger name.

    Returns:
        The configured logger.

    Raises:
        OSError: If the log file cannot be opened.
    """
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    if log_file is None:
        logger.addHandler(logging.NullHandler())
        logger.setLevel(logging.WARNING)
        return logger

    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, log_level.upper(), logging.WARNING))
    return logger


class Diagnostics:
    """Leveled message sink plus result output for one invocation.

    Attributes:
        options: Active color/debug/quiet settings.
        logger: File logger every message is mirrored to.
        output_file: When set, results are written here instead of stdout.

    Example:
        >>> diag = Diagnostics(LogOptions(use_debug=True))
        >>> diag.debug("GET https://panel.example.com/api/client")
        >>> diag.line('{"id": 1}')
    """

    def __init__(
        self,
        options: LogOptions | None = None,
        logger: logging.Logger | None = None,
        output_file: Path | None = None,
    ) -> None:
        self.logger = logger or logging.getLogger("soar")
        self.output_file = output_file
        self.configure(options or LogOptions())

    def configure(self, options: LogOptions) -> None:
        """Apply log options, e.g. once the effective config is resolved."""
        self.options = options
        # None defers to the NO_COLOR environment convention
        no_color = None if options.use_color else True
        # Consoles resolve sys.stdout/sys.stderr at write time
        self._err = Console(
            stderr=True,
            no_color=no_color,
            highlight=False,
            emoji=False,
        )
        self._out = Console(no_color=no_color, emoji=False)

    def _message(self, label: str, style: str, message: str) -> None:
        self._err.print(f"[{style}]{label}[/{style}]: {escape(message)}", soft_wrap=True)

    def debug(self, message: str) -> None:
        self.logger.debug(message)
        if self.options.use_debug:
            self._message("debug", "dim", message)

    def info(self, message: str) -> None:
        self.logger.info(message)
        if not self.options.quiet:
            self._message("info", "blue", message)

    def warn(self, message: str) -> None:
        self.logger.warning(message)
        if not self.options.quiet:
            self._message("warn", "yellow", message)

    def error(self, message: str, cause: BaseException | str | None = None) -> None:
        """Report a failure with its underlying cause. Never suppressed."""
        self.logger.error(f"{message}: {cause}" if cause else message)
        self._message("error", "red", message)
        if cause:
            self._message("error", "red", str(cause))

    def line(self, text: str) -> None:
        """Emit one command result."""
        if self.output_file is not None:
            self._write_file(self.output_file, text.encode("utf-8") + b"\n")
            return
        self._out.print(
            text,
            markup=False,
            highlight=self.options.use_color,
            soft_wrap=True,
        )

    def render(self, renderable: RenderableType) -> None:
        """Print a rich renderable (tables) to stdout."""
        self._out.print(renderable)

    def raw(self, data: bytes) -> None:
        """Emit raw response bytes unchanged."""
        if self.output_file is not None:
            self._write_file(self.output_file, data)
            return
        sys.stdout.flush()
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()

    def _write_file(self, path: Path, data: bytes) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise CommandError(f"failed to write output to {path}: {e}") from e
        self.logger.info(f"wrote {len(data)} bytes to {path}")
