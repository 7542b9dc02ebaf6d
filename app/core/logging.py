import logging
import logging.handlers
import sys
import time
import traceback
from pathlib import Path
from types import TracebackType

from app.config import Settings

LOG_LINE_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty third-party loggers pinned above the app level; apscheduler logs every tick at INFO.
QUIET_LOGGERS = {"apscheduler": logging.WARNING, "google": logging.WARNING, "urllib3": logging.WARNING, "httpx": logging.WARNING}
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")

_log_file_path: Path | None = None


class TailTracebackFormatter(logging.Formatter):
  """Console formatter that keeps the first line and the innermost frames of a traceback."""

  tail_lines = 5

  # ruff: noqa: N802
  def formatException(self, ei: tuple[type[BaseException] | None, BaseException | None, TracebackType | None]) -> str:
    lines = traceback.format_exception(*ei)
    if len(lines) <= self.tail_lines + 1:
      return "".join(lines)
    return "".join([lines[0], "    ...\n", *lines[-self.tail_lines :]])


def log_dir() -> Path:
  return Path(__file__).resolve().parents[2] / "logs"


def backup_namer(default_name: str) -> str:
  """`notify.log.2` -> `notify.log-2`."""
  stem, _, suffix = default_name.rpartition(".")
  return f"{stem}-{suffix}" if suffix.isdigit() else default_name


def _file_handler(settings: Settings) -> tuple[logging.Handler, Path]:
  directory = log_dir()
  try:
    directory.mkdir(parents=True, exist_ok=True)
  except OSError as exc:
    raise RuntimeError(f"Failed to create log directory at {directory}: {exc}") from exc

  path = directory / f"quickgas_notify_{time.strftime('%Y%m%d_%H%M%S')}.log"
  handler = logging.handlers.RotatingFileHandler(path, encoding="utf-8", maxBytes=settings.log_max_bytes, backupCount=settings.log_backup_count)
  handler.namer = backup_namer
  handler.setFormatter(logging.Formatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  return handler, path


def setup_logging(settings: Settings) -> Path:
  """Send app, server and scheduler logs to stdout plus a rotating file; return the file path."""
  console = logging.StreamHandler(sys.stdout)
  console.setFormatter(TailTracebackFormatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  file_handler, path = _file_handler(settings)
  handlers: list[logging.Handler] = [console, file_handler]

  logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO, handlers=handlers, force=True)
  for name in SERVER_LOGGERS:
    server_logger = logging.getLogger(name)
    server_logger.handlers = list(handlers)
    server_logger.propagate = False
  for name, level in QUIET_LOGGERS.items():
    logging.getLogger(name).setLevel(level)
  return path


def initialize_logging(settings: Settings) -> Path:
  """Configure logging on first call; later calls return the existing file path."""
  global _log_file_path
  if _log_file_path is None:
    _log_file_path = setup_logging(settings)
    logging.getLogger(__name__).info("Logging initialized env=%s file=%s", settings.environment, _log_file_path)
  return _log_file_path
