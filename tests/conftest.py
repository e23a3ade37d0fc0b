import os
import stat
import sys

import pytest

from trezorcipher.config import AppConfig
from trezorcipher.device import PIN_REQUEST, ResultStatus, TransportLost, WalletSession
from trezorcipher.errors import DeviceUnavailable


def xor_block(value: bytes) -> bytes:
    return bytes(b ^ 0x5A for b in value)


class RecordingSession(WalletSession):
    """In-memory device: XORs the value and journals every call in order."""

    name = "recording"

    def __init__(
        self,
        status=ResultStatus.CIPHERED_VALUE_RETURNED,
        fail_reset=False,
        ask_pin=False,
        lose_transport=0,
    ):
        super().__init__()
        self.status = status
        self.fail_reset = fail_reset
        self.ask_pin_on_cipher = ask_pin
        self.lose_transport = lose_transport
        self.calls = []
        self.pins = []

    def set_get_pin_callback(self, fn):
        self.calls.append("set_pin_callback")
        super().set_get_pin_callback(fn)

    def set_get_confirm_callback(self, fn):
        self.calls.append("set_confirm_callback")
        super().set_get_confirm_callback(fn)

    def ask_confirm(self, request):
        self.calls.append(("confirm", request.title))
        return super().ask_confirm(request)

    def reset(self):
        self.calls.append("reset")
        if self.fail_reset:
            raise DeviceUnavailable("usb_gone")

    def _reacquire(self):
        self.calls.append("reacquire")

    def cipher_key_value(self, derivation_path, is_encrypt, key_name, payload, iv, ask_on_encrypt=True, ask_on_decrypt=True):
        self.calls.append(("cipher_key_value", is_encrypt, key_name, bytes(payload)))
        return super().cipher_key_value(derivation_path, is_encrypt, key_name, payload, iv, ask_on_encrypt, ask_on_decrypt)

    def _cipher(self, derivation_path, is_encrypt, key_name, value, iv, ask_on_encrypt, ask_on_decrypt):
        self.calls.append(("cipher", derivation_path, value))
        if self.ask_pin_on_cipher:
            self.pins.append(self.ask_pin(PIN_REQUEST))
        if self.lose_transport:
            self.lose_transport -= 1
            raise TransportLost("cable_pulled")
        return xor_block(value), self.status


class StaticPrompt:
    def __init__(self, secret=b"1234"):
        self.secret = secret
        self.requests = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def get_secret(self, request):
        self.requests.append(request)
        return self.secret


@pytest.fixture
def cfg():
    return AppConfig()


@pytest.fixture
def write_script(tmp_path):
    def _write(name: str, body: str, python: bool = False) -> str:
        path = tmp_path / name
        shebang = f"#!{sys.executable}\n" if python else "#!/bin/sh\n"
        path.write_text(shebang + body)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _write


@pytest.fixture
def closed_stdin():
    r, w = os.pipe()
    os.close(w)
    f = os.fdopen(r, "rb", buffering=0)
    yield f
    f.close()
