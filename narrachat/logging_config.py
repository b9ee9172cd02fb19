# narrachat/logging_config.py
from __future__ import annotations
import logging, logging.handlers, sys, traceback
from pathlib import Path
from .constants import DEFAULT_LOG_MAX_BYTES, DEFAULT_LOG_BACKUP_COUNT

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def init_logging(log_path: Path, level: str = "INFO", max_bytes: int = DEFAULT_LOG_MAX_BYTES,
                 backup_count: int = DEFAULT_LOG_BACKUP_COUNT, also_console: bool = True) -> Path:
    """Rotating file log, plus stderr when `also_console` (stdout carries the streamed reply)."""
    log_path.parent.mkdir(parents=True, exist_ok=True)
    lvl = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(_FORMAT, _DATEFMT)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.setLevel(lvl)

    fh = logging.handlers.RotatingFileHandler(str(log_path), maxBytes=max_bytes, backupCount=backup_count,
                                              encoding="utf-8", delay=True)
    fh.setFormatter(formatter)
    root.addHandler(fh)

    if also_console:
        ch = logging.StreamHandler(sys.stderr)
        ch.setFormatter(formatter)
        root.addHandler(ch)

    # connection pool chatter on every streamed request
    for noisy in ("urllib3", "requests", "charset_normalizer"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    sys.excepthook = _log_uncaught
    logging.getLogger(__name__).info("Logging initialized → %s", log_path)
    return log_path


def _log_uncaught(exc_type, exc, tb):
    logging.getLogger("uncaught").error("Uncaught exception", exc_info=(exc_type, exc, tb))
    msg = "".join(traceback.format_exception_only(exc_type, exc)).strip()
    sys.stderr.write(f"\nFATAL: {msg}\n")
    sys.stderr.flush()
