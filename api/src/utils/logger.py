import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional


_CONFIGURED_LOGGERS: set[str] = set()

DEFAULT_LOGGER_NAME = "reco-ranking"


def _json_enabled() -> bool:
    return os.getenv("LOG_JSON", "1") not in ("0", "false", "False")


def configure_logging(name: Optional[str] = None) -> logging.Logger:
    """Attach a stdout handler to `name` (root logger when None).

    Respects env vars LOG_LEVEL (default INFO), LOG_JSON and LOG_FORMAT.
    Idempotent per logger name so repeated app startups don't stack handlers.
    """
    key = name or "<root>"
    logger = logging.getLogger(name)
    if key in _CONFIGURED_LOGGERS:
        return logger

    level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    logger.setLevel(getattr(logging, level_str, logging.INFO))

    if _json_enabled():
        fmt = os.getenv("LOG_FORMAT") or "%(levelname)s:     %(name)s %(message)s"
    else:
        fmt = os.getenv("LOG_FORMAT") or "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(fmt))

    logger.handlers.clear()
    logger.addHandler(handler)
    if name is not None:
        logger.propagate = False

    _CONFIGURED_LOGGERS.add(key)
    return logger


class Logger:
    """Structured event logger for the app lifecycle.

    Events carry keyword fields; with LOG_JSON=1 (default) each line is a JSON
    object `{"ts", "event", **fields}`, otherwise `event | k=v k=v`.
    """

    def __init__(self, name: Optional[str] = None):
        self._name = name or DEFAULT_LOGGER_NAME
        self._log = configure_logging(self._name)
        self._json = _json_enabled()

    def _emit(self, level: int, msg: str, **kv):
        if not self._log.isEnabledFor(level):
            return
        if self._json:
            payload = {"ts": datetime.now(timezone.utc).isoformat(), "event": msg}
            payload.update(kv)
            line = json.dumps(payload, ensure_ascii=False, default=str)
        elif kv:
            line = f"{msg} | " + " ".join(f"{k}={v}" for k, v in kv.items())
        else:
            line = msg
        self._log.log(level, line)

    def info(self, msg: str, **kv):
        self._emit(logging.INFO, msg, **kv)

    def warn(self, msg: str, **kv):
        self._emit(logging.WARNING, msg, **kv)

    def error(self, msg: str, **kv):
        self._emit(logging.ERROR, msg, **kv)

    def debug(self, msg: str, **kv):
        self._emit(logging.DEBUG, msg, **kv)
