"""Lightweight logging setup for the orchestrator.

Users can override the log level with the TOOLCTL_LOG_LEVEL env var and add a
log file with TOOLCTL_LOG_DIR.

Also includes a helper to safely summarize potentially large tool input or
payloads for logging without dumping them whole.
"""
from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Any, Dict


def _summarize_sequence(seq: Any, max_items: int) -> Dict[str, Any]:
    out: Dict[str, Any] = {"type": type(seq).__name__, "len": len(seq)}
    prev_vals = []
    for x in list(seq)[:max_items]:
        s = repr(x)
        if len(s) > 120:
            s = s[:117] + "..."
        prev_vals.append(s)
    out["preview"] = prev_vals
    return out


def summarize_for_log(obj: Any, *, max_items: int = 8) -> Any:
    """Return a compact, JSON-serializable summary suitable for logging.

    - Dict: size, keys (truncated) and value types, never the values
    - List/Tuple/Set: length and a short preview
    - str: length and truncated preview
    - bytes/bytearray: length
    - Other scalars: returned directly
    """
    if obj is None or isinstance(obj, (bool, int, float)):
        return obj
    if isinstance(obj, str):
        return {"type": "str", "len": len(obj), "preview": (obj if len(obj) <= 200 else obj[:197] + "...")}
    if isinstance(obj, (bytes, bytearray)):
        return {"type": type(obj).__name__, "len": len(obj)}
    if isinstance(obj, dict):
        keys = list(obj.keys())[:max_items]
        return {
            "type": "dict",
            "len": len(obj),
            "keys": [str(k) for k in keys],
            "value_types": {str(k): type(obj[k]).__name__ for k in keys},
        }
    if isinstance(obj, (list, tuple, set)):
        return _summarize_sequence(obj, max_items=max_items)
    return {"type": type(obj).__name__}


def _log_level() -> str:
    return os.getenv("TOOLCTL_LOG_LEVEL", "WARNING").upper()


_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_LOGGERS = []


def _attach_file_handler(logger: logging.Logger, log_dir: str):
    p = Path(log_dir)
    p.mkdir(parents=True, exist_ok=True)
    file_path = (p / "toolctl.log").resolve()
    for h in logger.handlers:
        if isinstance(h, logging.FileHandler) and Path(h.baseFilename) == file_path:
            return
    fh = logging.FileHandler(file_path, encoding="utf-8")
    fh.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(fh)


def get_logger(name: str = "toolctl") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(stream_handler)
        # Optional file handler if TOOLCTL_LOG_DIR is set
        log_dir = os.getenv("TOOLCTL_LOG_DIR")
        if log_dir:
            _attach_file_handler(logger, log_dir)
        logger.setLevel(_log_level())
        logger.propagate = False
        _LOGGERS.append(logger)
    return logger


def configure(level: str | None = None, log_dir: str | None = None):
    """Re-apply level / log dir to loggers created before the CLI parsed its flags."""
    if log_dir:
        os.environ["TOOLCTL_LOG_DIR"] = str(log_dir)
    if level:
        os.environ["TOOLCTL_LOG_LEVEL"] = level.upper()
    for logger in _LOGGERS:
        if log_dir:
            _attach_file_handler(logger, log_dir)
        if level:
            logger.setLevel(level.upper())


core_logger = get_logger("toolctl.core")

__all__ = ["get_logger", "configure", "core_logger", "summarize_for_log"]
