# trezorcipher/log.py
from __future__ import annotations

import json
import logging
import platform
import sys
from typing import Any, Dict, Optional

LOGGER_NAME = "trezorcipher"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not name:
        return logging.getLogger(LOGGER_NAME)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def setup_logging(verbose: bool = False, stream=None) -> logging.Logger:
    """
    Route all diagnostics to stderr.
    stdout carries the ciphered value and must stay clean.
    """
    logger = get_logger()
    for h in list(logger.handlers):
        logger.removeHandler(h)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO if verbose else logging.WARNING)
    logger.propagate = False
    return logger


def _host_identity() -> str:
    host = platform.node() or "unknown-host"
    sysname = platform.system() or "unknown-os"
    return f"{sysname}:{host}"


def build_log_context(**extra: Any) -> Dict[str, Any]:
    """
    Build a JSON-serializable dict describing a request.
    Callers pass lengths and labels only, never key material or payload bytes.
    """
    d: Dict[str, Any] = {"host": _host_identity()}
    for k, v in extra.items():
        if v is None:
            continue
        d[str(k)] = v
    return d


def encode_log_context(ctx: Dict[str, Any], max_len: int = 512) -> str:
    s = json.dumps(ctx, separators=(",", ":"), ensure_ascii=False)
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."
