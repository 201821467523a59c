"""Custom logging -- short paths on the console, per-provider log files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from petfeedback.infra.llm.base import PROVIDER_LOGGER_PREFIX

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


def _shorten_path(text: str, root_normalized: str) -> str:
    """Replace project-absolute paths with relative ones in a string."""
    if not text or not root_normalized:
        return text
    normalized = text.replace("\\", "/")
    if root_normalized not in normalized:
        return text
    return normalized.replace(root_normalized + "/", "").replace(root_normalized, ".")


def _detect_project_root() -> Path:
    return Path(__file__).resolve().parent.parent.parent


class ShortPathFormatter(logging.Formatter):

    def __init__(self, *args, project_root: Path | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.project_root = project_root or _detect_project_root()
        self._root_norm = str(self.project_root).replace("\\", "/")

    def _shorten_logger_name(self, name: str) -> str:
        if name.startswith("petfeedback."):
            return name
        if "." in name:
            return ".".join(name.split(".")[-2:])
        return name

    def format(self, record: logging.LogRecord) -> str:
        original_name = record.name
        record.name = self._shorten_logger_name(record.name)
        try:
            message = self._safe_format(record)
        finally:
            record.name = original_name
        return _shorten_path(message, self._root_norm)

    def _safe_format(self, record: logging.LogRecord) -> str:
        """Format with fallback for mismatched %-style args (e.g. SDK loggers)."""
        try:
            return super().format(record)
        except TypeError:
            record.msg = f"{record.msg} {record.args}"
            record.args = None
            return super().format(record)


class ProviderFileHandler(logging.Handler):
    """Append records from ``petfeedback.provider.<name>`` to ``<name>-<suffix>.log``.

    One file handler per provider is opened lazily; write failures go
    through ``handleError`` like any stdlib handler and never reach callers.
    """

    def __init__(self, log_dir: str | Path, suffix: str, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.log_dir = Path(log_dir).expanduser()
        self.suffix = suffix
        self._handlers: dict[str, logging.FileHandler] = {}

    def _provider_name(self, record: logging.LogRecord) -> str:
        prefix = PROVIDER_LOGGER_PREFIX + "."
        if record.name.startswith(prefix):
            return record.name[len(prefix):].split(".", 1)[0]
        return "unknown"

    def _handler_for(self, provider: str) -> logging.FileHandler:
        handler = self._handlers.get(provider)
        if handler is None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(self.log_dir / f"{provider}-{self.suffix}.log", encoding="utf-8")
            handler.setFormatter(self.formatter or logging.Formatter(LOG_FORMAT))
            self._handlers[provider] = handler
        return handler

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._handler_for(self._provider_name(record)).emit(record)
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        for handler in self._handlers.values():
            handler.close()
        self._handlers.clear()
        super().close()


def configure_logging(
    level: int = logging.WARNING,
    *,
    debug: bool = False,
    log_dir: Optional[str] = None,
    formatter: logging.Formatter | None = None,
) -> None:
    """Install console logging; with *log_dir* also write per-provider files.

    Provider debug output is only emitted when *debug* is set.
    """
    if formatter is None:
        formatter = ShortPathFormatter(LOG_FORMAT)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.setLevel(logging.DEBUG if debug else level)

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    root.addHandler(handler)
    root.setLevel(level)

    provider_logger = logging.getLogger(PROVIDER_LOGGER_PREFIX)
    for old in list(provider_logger.handlers):
        provider_logger.removeHandler(old)
        old.close()
    provider_logger.setLevel(logging.DEBUG if debug else level)

    if log_dir:
        file_formatter = logging.Formatter(LOG_FORMAT)
        if debug:
            debug_files = ProviderFileHandler(log_dir, "provider", logging.DEBUG)
            debug_files.setFormatter(file_formatter)
            provider_logger.addHandler(debug_files)
        error_files = ProviderFileHandler(log_dir, "errors", logging.ERROR)
        error_files.setFormatter(file_formatter)
        provider_logger.addHandler(error_files)

    # SDK / transport chatter stays quiet unless explicitly debugging
    for name in ("httpx", "httpcore", "openai"):
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)
