from __future__ import annotations

import time
from typing import Any, Dict, Optional

from trezorlib import messages, tools
from trezorlib.client import get_default_client
from trezorlib.exceptions import Cancelled, PinException, TrezorFailure
from trezorlib.transport import TransportException

from .device import PASSPHRASE_REQUEST, PIN_REQUEST, ResultStatus, TransportLost, WalletSession
from .errors import CipherError, DeviceError, DeviceResetFailed, DeviceUnavailable, PromptIOError
from .log import get_logger

log = get_logger("trezor")


class CallbackUI:
    """trezorlib UI object that forwards PIN/passphrase requests to the session's prompt callback."""

    def __init__(self, session: "TrezorSession"):
        self.session = session

    def button_request(self, br) -> None:
        log.warning("Please confirm the operation on the device.")

    def _ask(self, request) -> str:
        secret = self.session.ask_pin(request)
        try:
            return secret.decode("utf-8")
        except UnicodeDecodeError:
            raise PromptIOError("secret_not_utf8")

    def get_pin(self, code=None) -> str:
        return self._ask(PIN_REQUEST)

    def get_passphrase(self, available_on_device: bool = False) -> str:
        return self._ask(PASSPHRASE_REQUEST)


class TrezorSession(WalletSession):
    """
    Session on a real device through the trezorlib 0.13 client API
    (`get_default_client(path, ui)`, `init_device`, `call`).
    """

    name = "trezor"

    def __init__(self, path: Optional[str] = None):
        super().__init__()
        self.path = path
        self._client = None
        self._acquire()

    @property
    def client(self):
        if self._client is None:
            raise DeviceUnavailable("no_connection")
        return self._client

    def _acquire(self) -> None:
        try:
            self._client = get_default_client(path=self.path, ui=CallbackUI(self))
        except TransportException as e:
            raise DeviceUnavailable(f"no_device:{e}")

    def _reacquire(self) -> None:
        last = None
        for _ in range(3):
            try:
                self._acquire()
                return
            except DeviceUnavailable as e:
                last = e
                time.sleep(0.2)
        raise DeviceUnavailable(f"reacquire_failed:{last}")

    def close(self) -> None:
        # the USB handle is released when the client is collected
        self._client = None

    def describe(self) -> Dict[str, Any]:
        f = self.client.features
        return {
            "device": self.name,
            "model": f.model or "1",
            "label": f.label,
            "firmware": f"{f.major_version}.{f.minor_version}.{f.patch_version}",
            "initialized": bool(f.initialized),
            "pin_protection": bool(f.pin_protection),
            "passphrase_protection": bool(f.passphrase_protection),
        }

    def reset(self) -> None:
        try:
            self.client.init_device(new_session=True)
        except (TransportException, TrezorFailure) as e:
            raise DeviceResetFailed(f"reset_failed:{e}")

    def _cipher(self, derivation_path, is_encrypt, key_name, value, iv, ask_on_encrypt, ask_on_decrypt):
        try:
            address_n = tools.parse_path(derivation_path)
        except ValueError as e:
            raise DeviceError(f"bad_derivation_path:{e}")

        msg = messages.CipherKeyValue(
            address_n=address_n,
            key=key_name,
            value=value,
            encrypt=is_encrypt,
            ask_on_encrypt=ask_on_encrypt,
            ask_on_decrypt=ask_on_decrypt,
            iv=iv,
        )
        try:
            resp = self.client.call(msg)
        except CipherError:
            raise
        except TransportException as e:
            raise TransportLost(f"transport_lost:{e}")
        except Cancelled:
            raise DeviceError("action_cancelled")
        except PinException as e:
            raise DeviceError(f"pin_invalid:{e}")
        except TrezorFailure as e:
            raise DeviceError(f"device_failure:{e}")
        except ValueError as e:
            # trezorlib rejects a PIN that is not made of matrix digits 1-9
            raise PromptIOError(f"pin_malformed:{e}")

        if isinstance(resp, messages.CipheredKeyValue):
            return bytes(resp.value or b""), ResultStatus.CIPHERED_VALUE_RETURNED
        if isinstance(resp, messages.Success):
            return b"", ResultStatus.GENERIC_SUCCESS
        if isinstance(resp, messages.Failure):
            return b"", ResultStatus.FAILURE
        return b"", ResultStatus.UNEXPECTED
