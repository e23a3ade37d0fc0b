from __future__ import annotations

import sys
from typing import BinaryIO, Optional, Union

from .errors import InputReadError
from .log import get_logger

STDIN_SENTINEL = "-"

log = get_logger("source")


def resolve_input(
    env_value: Optional[Union[str, bytes]],
    path: str = STDIN_SENTINEL,
    stdin: Optional[BinaryIO] = None,
) -> bytes:
    """
    Pick the value to transform: a non-empty environment value wins,
    then "-" (stdin until EOF), then the named file.

    The environment route keeps the value out of shell history and files,
    but any process of the same user can read it from the process table.
    """
    if env_value:
        log.info("Using the value from the environment.")
        if isinstance(env_value, str):
            return env_value.encode("utf-8")
        return bytes(env_value)

    if path == STDIN_SENTINEL:
        log.info("Reading the data from stdin.")
        src = stdin if stdin is not None else sys.stdin.buffer
        try:
            return src.read()
        except (OSError, ValueError) as e:
            raise InputReadError(f"stdin_read_failed:{e}")

    log.info('Reading the data file "%s"', path)
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise InputReadError(f"file_read_failed:{e}")
