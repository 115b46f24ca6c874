import logging
import sys
from datetime import datetime, timezone
from typing import Optional


LOGGER_NAME = "bios_sync"

UNICODE_FALLBACKS = {
    "\u2713": "[OK]",   # ✓
    "\u2717": "[X]",    # ✗
    "\u2026": "...",    # …
    "\u2013": "-",      # –
    "\u2014": "-",      # —
}


def utc_now_iso() -> str:
    """Return current UTC time as ISO format string with timezone info."""
    return datetime.now(timezone.utc).isoformat()


def _normalize_unicode(text: str) -> str:
    """Replace problematic Unicode characters with ASCII equivalents."""
    for bad, repl in UNICODE_FALLBACKS.items():
        text = text.replace(bad, repl)
    return text


def _safe_to_stdout(text: str) -> str:
    """Ensure text can be encoded to stdout without exceptions."""
    enc = getattr(sys.stdout, "encoding", None) or "utf-8"
    try:
        return text.encode(enc, errors="replace").decode(enc, errors="replace")
    except Exception:
        return text.encode("ascii", errors="replace").decode("ascii", errors="replace")


class ConsoleSafeFormatter(logging.Formatter):
    """Formatter that keeps console output encodable on legacy code pages."""

    def format(self, record: logging.LogRecord) -> str:
        return _safe_to_stdout(_normalize_unicode(super().format(record)))


def _make_formatter(cls=logging.Formatter) -> logging.Formatter:
    return cls(
        fmt="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def get_logger(level: Optional[str] = None) -> logging.Logger:
    """Lazily configure the package logger with a console handler."""
    logger = logging.getLogger(LOGGER_NAME)
    if not any(getattr(h, "_bios_sync_console", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(_make_formatter(ConsoleSafeFormatter))
        handler._bios_sync_console = True
        logger.addHandler(handler)
        logger.propagate = False
    if level:
        logger.setLevel(level.upper())
    elif logger.level == logging.NOTSET:
        logger.setLevel(logging.INFO)
    return logger


def attach_action_log(logger: logging.Logger, path: str) -> logging.FileHandler:
    """
    Append every log record to a text file.

    Args:
        logger: Logger to attach the handler to
        path: Log file path (opened in append mode)

    Returns:
        The attached handler, so callers can detach and close it
    """
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(_make_formatter())
    logger.addHandler(handler)
    return handler


def detach_handler(logger: logging.Logger, handler: logging.Handler):
    """Remove and close a handler previously added with attach_action_log."""
    logger.removeHandler(handler)
    handler.close()
