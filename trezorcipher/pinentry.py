"""
Client side of the pinentry Assuan dialogue.

One pinentry process serves the whole run: it is started on first use (or when
the backend is entered as a context manager) and told BYE on close.
"""
from __future__ import annotations

import os
import subprocess
from typing import List, Optional
from urllib.parse import unquote_to_bytes

from .errors import PromptCancelled, PromptIOError
from .log import get_logger
from .prompt import PromptBackend, PromptRequest

log = get_logger("pinentry")

# GPG_ERR_CANCELED, GPG_ERR_FULLY_CANCELED (low 16 bits of the Assuan error code)
CANCEL_ERROR_CODES = {99, 198}


def escape(value: str) -> str:
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


class AssuanError(Exception):
    def __init__(self, code: int, message: str):
        super().__init__(f"{code} {message}")
        self.code = code
        self.message = message

    @property
    def cancelled(self) -> bool:
        return (self.code & 0xFFFF) in CANCEL_ERROR_CODES


class PinentryClient:
    def __init__(self, program: str = "pinentry"):
        self.program = program
        self._proc: Optional[subprocess.Popen] = None

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def start(self) -> None:
        if self.running:
            return
        log.info('Starting "%s"', self.program)
        try:
            self._proc = subprocess.Popen(
                [self.program],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
            )
        except OSError as e:
            raise PromptIOError(f"pinentry_start_failed:{e}")
        try:
            self._read_response()
        except AssuanError as e:
            raise PromptIOError(f"pinentry_bad_greeting:{e}")
        self._set_tty_options()

    def _set_tty_options(self) -> None:
        if not os.isatty(0):
            return
        options = [f"ttyname={os.ttyname(0)}"]
        term = os.environ.get("TERM")
        if term:
            options.append(f"ttytype={term}")
        for opt in options:
            try:
                self.command(f"OPTION {opt}")
            except AssuanError as e:
                log.info("pinentry ignored OPTION %s: %s", opt.split("=")[0], e.message)

    def _send(self, line: str) -> None:
        if self._proc is None or self._proc.stdin is None:
            raise PromptIOError("pinentry_not_started")
        try:
            self._proc.stdin.write(line.encode("utf-8") + b"\n")
            self._proc.stdin.flush()
        except (OSError, ValueError) as e:
            raise PromptIOError(f"pinentry_write_failed:{e}")

    def _read_response(self) -> bytes:
        """
        Read lines up to OK/ERR. Returns the decoded data; raises AssuanError on ERR.
        """
        if self._proc is None or self._proc.stdout is None:
            raise PromptIOError("pinentry_not_started")
        data: List[bytes] = []
        while True:
            raw = self._proc.stdout.readline()
            if not raw:
                raise PromptIOError("pinentry_closed_connection")
            line = raw.rstrip(b"\r\n")
            if line == b"OK" or line.startswith(b"OK "):
                return b"".join(data)
            if line.startswith(b"ERR "):
                parts = line[4:].decode("utf-8", "replace").split(" ", 1)
                try:
                    code = int(parts[0])
                except ValueError:
                    code = 0
                raise AssuanError(code, parts[1] if len(parts) > 1 else "")
            if line.startswith(b"D "):
                data.append(unquote_to_bytes(line[2:]))
            elif line.startswith(b"S "):
                log.info("pinentry status: %s", line[2:].decode("utf-8", "replace"))
            elif line.startswith(b"INQUIRE"):
                self._send("CAN")
            # comments ("#") and anything unknown are skipped

    def command(self, line: str) -> bytes:
        self._send(line)
        return self._read_response()

    def set_title(self, title: str) -> None:
        self.command(f"SETTITLE {escape(title)}")

    def set_desc(self, desc: str) -> None:
        self.command(f"SETDESC {escape(desc)}")

    def set_prompt(self, prompt: str) -> None:
        self.command(f"SETPROMPT {escape(prompt)}")

    def set_ok(self, label: str) -> None:
        self.command(f"SETOK {escape(label)}")

    def set_cancel(self, label: str) -> None:
        self.command(f"SETCANCEL {escape(label)}")

    def get_pin(self) -> bytes:
        return self.command("GETPIN")

    def close(self) -> None:
        proc = self._proc
        self._proc = None
        if proc is None:
            return
        if proc.poll() is None:
            try:
                proc.stdin.write(b"BYE\n")
                proc.stdin.flush()
            except (OSError, ValueError) as e:
                log.info("pinentry went away before BYE: %s", e)
        for f in (proc.stdin, proc.stdout):
            if f is not None:
                f.close()
        try:
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()


class PinentryPrompt(PromptBackend):
    def __init__(self, program: str = "pinentry"):
        self.client = PinentryClient(program)

    def __enter__(self) -> "PinentryPrompt":
        self.client.start()
        return self

    def close(self) -> None:
        self.client.close()

    def get_secret(self, request: PromptRequest) -> bytes:
        self.client.start()
        try:
            self.client.set_title(request.title)
            self.client.set_desc(request.description)
            self.client.set_prompt(request.title)
            self.client.set_ok(request.ok_label)
            self.client.set_cancel(request.cancel_label)
            return self.client.get_pin()
        except AssuanError as e:
            if e.cancelled:
                raise PromptCancelled(f"pinentry_cancelled:{e.message}")
            raise PromptIOError(f"pinentry_error:{e}")
