from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

_TAGS = {
    logging.DEBUG: "[debug]",
    logging.INFO: "[info]",
    logging.WARNING: "[warn]",
    logging.ERROR: "[error]",
    logging.CRITICAL: "[crit]",
}


def parse_level(value: Union[str, int, None], default: int = logging.WARNING) -> int:
    """Map a level name (debug, info, warn, error, crit) to a logging constant."""
    if isinstance(value, int):
        return value
    return _LEVELS.get(str(value or "").strip().lower(), default)


class SyslogFormatter(logging.Formatter):
    """Formatter for syslog output without timestamps (syslog adds its own)."""

    def __init__(self, tag: str = "hostkeys") -> None:
        super().__init__()
        self.tag = tag

    def format(self, record):
        record.level_tag = _TAGS.get(record.levelno, f"[lvl{record.levelno}]")
        return f"{self.tag}: {record.level_tag} {record.name}: {record.getMessage()}"


class BracketLevelFormatter(logging.Formatter):
    """Custom formatter that adds bracketed lowercase level tags and UTC timestamps."""

    def formatTime(self, record, datefmt=None):
        """Format the record's creation time as UTC ISO-8601 with Z suffix."""
        created = datetime.fromtimestamp(record.created, timezone.utc)
        return created.strftime("%Y-%m-%dT%H:%M:%SZ")

    def format(self, record):
        record.level_tag = _TAGS.get(record.levelno, f"[lvl{record.levelno}]")
        return super().format(record)


def init_logging(cfg: Optional[Dict[str, Any]]) -> None:
    """
    Initialize logging for the hostkeys CLI and scripts.

    Args:
        cfg: Logging configuration dictionary with optional keys:
            - level: debug, info, warn, error, crit (default: warn)
            - stderr: boolean to log to stderr (default: True)
            - file: string path to log file (optional)
            - syslog: boolean or dict enabling syslog logging (optional).
                A dict may carry ``address`` (default /dev/log), ``facility``
                (default USER) and ``tag`` (default hostkeys).
            - paramiko_level: level for the paramiko loggers (default: crit).
                Aborted handshakes are routine here and paramiko reports each
                one at ERROR with a traceback.

    Example config:
        {
            "level": "info",
            "file": "./hostkeys.log",
            "syslog": {"tag": "hostkeys"}
        }
    """
    cfg = cfg or {}

    level = parse_level(cfg.get("level", "warn"))

    fmt = "%(asctime)s %(level_tag)s %(name)s: %(message)s"
    formatter = BracketLevelFormatter(fmt=fmt)

    root = logging.getLogger()
    root.setLevel(level)

    # Re-initialisation replaces handlers instead of stacking them.
    for h in list(root.handlers):
        root.removeHandler(h)

    if cfg.get("stderr", True):
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(formatter)
        root.addHandler(stderr_handler)

    file_path = cfg.get("file")
    if isinstance(file_path, str) and file_path.strip():
        path = os.path.abspath(os.path.expanduser(file_path.strip()))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    syslog_cfg = cfg.get("syslog")
    if syslog_cfg:
        try:
            if isinstance(syslog_cfg, dict):
                address = syslog_cfg.get("address", "/dev/log")
                if isinstance(address, list):
                    address = tuple(address)
                facility = getattr(
                    logging.handlers.SysLogHandler,
                    f"LOG_{str(syslog_cfg.get('facility', 'USER')).upper()}",
                    logging.handlers.SysLogHandler.LOG_USER,
                )
                tag = str(syslog_cfg.get("tag", "hostkeys"))
            else:
                address = "/dev/log"
                facility = logging.handlers.SysLogHandler.LOG_USER
                tag = "hostkeys"

            syslog_handler = logging.handlers.SysLogHandler(
                address=address, facility=facility
            )
            syslog_handler.setFormatter(SyslogFormatter(tag=tag))
            root.addHandler(syslog_handler)
        except (
            OSError,
            ValueError,
        ) as e:  # pragma: no cover - depends on a local syslog socket
            root.warning("Failed to configure syslog: %s", e)

    logging.getLogger("paramiko").setLevel(
        parse_level(cfg.get("paramiko_level"), default=logging.CRITICAL)
    )

    logging.captureWarnings(True)
