"""
PIN / passphrase acquisition.

A backend answers one question, "give me the secret for this request", and is
picked once at startup:

- PinentryPrompt: a pinentry agent driven over the Assuan protocol
- AskpassPrompt: an askpass utility, secret read from its stdout
- PtyAskpassPrompt: same, but run behind a pseudo-terminal so utilities that
  talk to /dev/tty directly still work

Secrets only ever live in memory and are never logged.
"""
from __future__ import annotations

import fcntl
import os
import pty
import subprocess
import sys
import termios
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from .config import PromptConfig
from .errors import AskpassNotFound, PromptIOError
from .log import get_logger
from .terminal import copy_stream, raw_mode, relay_until_stopped

log = get_logger("prompt")


@dataclass(frozen=True)
class PromptRequest:
    title: str
    description: str = ""
    ok_label: str = "OK"
    cancel_label: str = "Cancel"


class PromptBackend(ABC):
    def __enter__(self) -> "PromptBackend":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def close(self) -> None:
        pass

    @abstractmethod
    def get_secret(self, request: PromptRequest) -> bytes:
        raise NotImplementedError


def deny_confirmation(request: PromptRequest) -> bool:
    """
    Confirmation requests only come up when the device asks to reconnect.
    A lost device ends the run instead.
    """
    log.info("Refusing confirmation request: %s", request.title)
    return False


def executable_exists(name: str, path_env: Optional[str] = None) -> bool:
    if not name:
        return False
    if name.startswith("/"):
        return os.path.exists(name)

    search = os.environ.get("PATH", "") if path_env is None else path_env
    for d in search.split(os.pathsep):
        if os.path.exists(os.path.join(d, name)):
            return True
    return False


def find_askpass(candidates: List[str], path_env: Optional[str] = None) -> Optional[str]:
    for c in candidates:
        if executable_exists(c, path_env=path_env):
            return c
    return None


def _fileno(stream) -> Optional[int]:
    try:
        return stream.fileno()
    except (AttributeError, OSError, ValueError):
        return None


class AskpassPrompt(PromptBackend):
    """Runs `<askpass> <title>` and takes its stdout as the secret."""

    def __init__(self, path: str):
        self.path = path

    def get_secret(self, request: PromptRequest) -> bytes:
        log.info('Running command "%s %s"', self.path, request.title)
        try:
            proc = subprocess.run([self.path, request.title], stdout=subprocess.PIPE, check=False)
        except OSError as e:
            raise PromptIOError(f"askpass_start_failed:{e}")
        if proc.returncode != 0:
            log.info("askpass exited with status %d", proc.returncode)
        return proc.stdout.rstrip(b"\r\n")


def _take_controlling_tty() -> None:
    # runs in the child after setsid(); fd 0 is the pty slave
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class PtyAskpassPrompt(AskpassPrompt):
    """
    Askpass behind a pseudo-terminal.

    The child gets the pty slave as stdin, stderr and controlling terminal; its
    stdout stays a pipe and carries the secret. While it runs, our real stdin is
    relayed into the pty master on a background thread and the master's output is
    drained to our stderr on the calling thread. Both directions must move at
    once: the utility may print a prompt while it waits for keystrokes.
    """

    def __init__(self, path: str, stdin=None, stderr=None):
        super().__init__(path)
        self._stdin = stdin
        self._stderr = stderr

    def get_secret(self, request: PromptRequest) -> bytes:
        stdin_fd = _fileno(self._stdin if self._stdin is not None else sys.stdin)
        stderr_fd = _fileno(self._stderr if self._stderr is not None else sys.stderr)
        if stderr_fd is None:
            stderr_fd = 2

        log.info('Running command "%s %s"', self.path, request.title)
        master_fd, slave_fd = pty.openpty()
        try:
            proc = subprocess.Popen(
                [self.path, request.title],
                stdin=slave_fd,
                stdout=subprocess.PIPE,
                stderr=slave_fd,
                start_new_session=True,
                preexec_fn=_take_controlling_tty,
            )
        except (OSError, subprocess.SubprocessError) as e:
            os.close(master_fd)
            raise PromptIOError(f"askpass_start_failed:{e}")
        finally:
            os.close(slave_fd)

        captured: List[bytes] = []
        reader = threading.Thread(target=lambda: captured.append(proc.stdout.read()), daemon=True)
        reader.start()

        master = os.fdopen(master_fd, "r+b", buffering=0)
        err_out = os.fdopen(stderr_fd, "wb", buffering=0, closefd=False)
        stop = threading.Event()
        relay = None
        try:
            with raw_mode(stdin_fd if stdin_fd is not None else -1):
                if stdin_fd is not None:
                    real_in = os.fdopen(stdin_fd, "rb", buffering=0, closefd=False)
                    relay = threading.Thread(
                        target=relay_until_stopped, args=(real_in, master, stop), daemon=True
                    )
                    relay.start()
                try:
                    copy_stream(master, err_out)
                finally:
                    stop.set()
                    if relay is not None:
                        relay.join()
        finally:
            master.close()
            proc.wait()
            reader.join()

        if proc.returncode != 0:
            log.info("askpass exited with status %d", proc.returncode)
        return b"".join(captured).strip(b"\r\n")


def select_backend(
    cfg: PromptConfig,
    use_pinentry: bool = False,
    askpass_path: Optional[str] = None,
    path_env: Optional[str] = None,
) -> PromptBackend:
    """
    Pinentry wins when asked for; otherwise an explicit askpass path, then the
    first configured candidate that exists.
    """
    if use_pinentry:
        from .pinentry import PinentryPrompt

        return PinentryPrompt(cfg.pinentry_program)

    path = askpass_path or find_askpass(cfg.askpass_candidates, path_env=path_env)
    if not path:
        raise AskpassNotFound(
            "There's no askpass utility found. Please use option -P or -p to select an utility "
            "to enter a PIN-code and a passphrase."
        )

    if cfg.relay_pty:
        return PtyAskpassPrompt(path)
    return AskpassPrompt(path)
