from __future__ import annotations

import errno
import select
import threading
import termios
import tty
from contextlib import contextmanager
from typing import Iterator

from .log import get_logger

log = get_logger("terminal")

CHUNK_SIZE = 1024


@contextmanager
def raw_mode(fd: int) -> Iterator[bool]:
    """
    Put the terminal behind fd into raw mode for the duration of the block.
    The saved attributes are restored on every exit path.
    Yields False without touching anything when fd is not a usable terminal.
    """
    saved = None
    try:
        saved = termios.tcgetattr(fd)
        tty.setraw(fd)
    except (termios.error, OSError, ValueError):
        saved = None

    if saved is None:
        log.warning(
            "The stdin is already closed, but we're waiting for reply from an askpass utility "
            "(this is OK, if the utility is not waiting any input from our stdin)."
        )
        yield False
        return

    try:
        yield True
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


def copy_stream(src, dst) -> int:
    """
    Copy bytes between two unbuffered binary files until EOF.
    EIO on a pty master means the slave side is gone and counts as EOF.
    A file closed by the other half of the relay ends the copy as well.
    """
    total = 0
    while True:
        try:
            chunk = src.read(CHUNK_SIZE)
        except OSError as e:
            if e.errno in (errno.EIO, errno.EBADF):
                return total
            raise
        except ValueError:
            return total
        if not chunk:
            return total
        view = memoryview(chunk)
        while view:
            try:
                n = dst.write(view)
            except OSError as e:
                if e.errno in (errno.EIO, errno.EBADF, errno.EPIPE):
                    return total
                raise
            except ValueError:
                return total
            if not n:
                continue
            view = view[n:]
            total += n


def relay_until_stopped(src, dst, stop: threading.Event, poll_interval: float = 0.1) -> int:
    """
    Like copy_stream, but polls src so the relay can be stopped between reads
    instead of staying blocked on a terminal nobody reads from anymore.
    """
    total = 0
    while not stop.is_set():
        try:
            ready, _, _ = select.select([src], [], [], poll_interval)
        except (OSError, ValueError):
            return total
        if not ready:
            continue
        try:
            chunk = src.read(CHUNK_SIZE)
        except (OSError, ValueError):
            return total
        if not chunk:
            return total
        try:
            dst.write(chunk)
        except (OSError, ValueError):
            return total
        total += len(chunk)
    return total
