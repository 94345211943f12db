"""Console logging setup and the consolidated run log file.

The log file is plain text, one timestamped line per record:

    [2026-01-31 14:02:11] [SUCCESS] Subscription context set to 'Production'

SUCCESS is a custom level between INFO and WARNING.
"""

import logging
from datetime import datetime
from pathlib import Path

from arc_onboarding.core.prompts import Prompter

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

ROOT_LOGGER_NAME = "arc_onboarding"
LOG_LINE_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(__name__)


class LogFileError(Exception):
    """Raised when the log directory or file cannot be used."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.message = message
        self.path = path


def log_success(log: logging.Logger, message: str) -> None:
    """Log a message at the SUCCESS level."""
    log.log(SUCCESS, message)


def configure_logging(level: str | int = "INFO") -> None:
    """Configure console logging for command-line use."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Azure SDK HTTP logging is noisy at INFO
    logging.getLogger("azure").setLevel(logging.WARNING)


def default_log_filename(prefix: str, now: datetime | None = None) -> str:
    """Build the default log file name for a run."""
    now = now or datetime.now()
    return f"{prefix}_{now.strftime('%Y%m%d_%H%M%S')}.log"


def _next_free_path(path: Path) -> Path:
    """Return ``path`` with the first unused ``_N`` suffix."""
    counter = 1
    while True:
        candidate = path.with_name(f"{path.stem}_{counter}{path.suffix}")
        if not candidate.exists():
            return candidate
        counter += 1


class ConsolidatedLogFile:
    """Append-only run log attached to the package logger.

    Args:
        directory: Default directory for the log file
        prefix: File name prefix for the default file name
        prompter: Prompter used for path and conflict questions
    """

    def __init__(
        self,
        directory: str | Path = ".",
        prefix: str = "ArcPrereqCheck",
        prompter: Prompter | None = None,
    ):
        self.directory = Path(directory)
        self.prefix = prefix
        self.prompter = prompter or Prompter(interactive=False)
        self.path: Path | None = None
        self._handler: logging.FileHandler | None = None

    @property
    def default_path(self) -> Path:
        """Default log path in the configured directory."""
        return self.directory / default_log_filename(self.prefix)

    def resolve_path(self, requested: str | Path | None = None) -> Path:
        """Decide where the log file goes.

        An explicit ``requested`` path skips the prompt. A directory (existing,
        or given with a trailing separator, or without a file suffix) gets the
        default file name appended.
        """
        default = self.default_path

        if requested is None:
            answer = self.prompter.ask(
                "Log file location (Enter to accept, or a directory/full path)",
                default=str(default),
            )
        else:
            answer = str(requested)

        answer = answer.strip().strip('"')
        if not answer:
            return default

        candidate = Path(answer).expanduser()
        if candidate.is_dir() or answer.endswith(("/", "\\")) or not candidate.suffix:
            return candidate / default.name
        return candidate

    def _resolve_conflict(self, path: Path) -> tuple[Path, str]:
        """Handle an existing file. Returns the final path and open mode."""
        if not path.exists():
            return path, "a"

        self.prompter.say(f"Log file already exists: {path}")
        choice = self.prompter.ask("[O]verwrite, [R]ename, or [A]ppend", default="A").lower()

        if choice.startswith("o"):
            return path, "w"
        if choice.startswith("r"):
            return _next_free_path(path), "a"
        return path, "a"

    def open(self, requested: str | Path | None = None) -> Path:
        """Resolve the path, create parent directories and attach the handler.

        Raises:
            LogFileError: If the directory or file cannot be created or opened
        """
        path = self.resolve_path(requested)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LogFileError(f"Cannot create log directory '{path.parent}': {e}", path) from e

        path, mode = self._resolve_conflict(path)

        try:
            handler = logging.FileHandler(path, mode=mode, encoding="utf-8")
        except OSError as e:
            raise LogFileError(f"Cannot open log file '{path}': {e}", path) from e

        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))

        package_logger = logging.getLogger(ROOT_LOGGER_NAME)
        package_logger.addHandler(handler)
        if package_logger.getEffectiveLevel() > logging.INFO:
            package_logger.setLevel(logging.INFO)

        self._handler = handler
        self.path = path
        logger.info(f"Logging to {path}")
        return path

    def close(self) -> None:
        """Detach and close the file handler."""
        if self._handler is None:
            return
        logging.getLogger(ROOT_LOGGER_NAME).removeHandler(self._handler)
        self._handler.close()
        self._handler = None

    def __enter__(self) -> "ConsolidatedLogFile":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
