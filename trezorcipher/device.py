from __future__ import annotations

import enum
import hashlib
import hmac
from typing import Any, Callable, Dict, Optional, Tuple

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import CipherError, DeviceError, DeviceUnavailable
from .log import get_logger
from .padding import BLOCK_SIZE, from_hex, pad_plaintext
from .prompt import PromptRequest

log = get_logger("device")

PinCallback = Callable[[PromptRequest], bytes]
ConfirmCallback = Callable[[PromptRequest], bool]


class ResultStatus(enum.Enum):
    GENERIC_SUCCESS = "success"
    CIPHERED_VALUE_RETURNED = "ciphered_key_value"
    FAILURE = "failure"
    UNEXPECTED = "unexpected"


SUCCESS_STATUSES = frozenset({ResultStatus.GENERIC_SUCCESS, ResultStatus.CIPHERED_VALUE_RETURNED})


class TransportLost(DeviceUnavailable):
    pass


PIN_REQUEST = PromptRequest(
    title="PIN",
    description=(
        "Enter the PIN using the positions of the scrambled digits shown on the device:\n"
        "7 8 9\n4 5 6\n1 2 3"
    ),
    ok_label="OK",
    cancel_label="Cancel",
)

PASSPHRASE_REQUEST = PromptRequest(
    title="Passphrase",
    description="Enter the passphrase of the hidden wallet (leave empty for the standard wallet).",
    ok_label="OK",
    cancel_label="Cancel",
)

RECONNECT_REQUEST = PromptRequest(
    title="Reconnect",
    description="The device was disconnected. Reconnect it to continue.",
    ok_label="Reconnect",
    cancel_label="Abort",
)


def slip11_key_label(key_name: str, ask_on_encrypt: bool, ask_on_decrypt: bool) -> bytes:
    return (key_name + ("E1" if ask_on_encrypt else "E0") + ("D1" if ask_on_decrypt else "D0")).encode("utf-8")


class WalletSession:
    """
    Device facade: reset, callback slots and the cipher-key-value call.

    Subclasses implement _cipher() on a block-aligned raw value and raise
    TransportLost when the device goes away mid-call.
    """

    name = "wallet"

    def __init__(self) -> None:
        self._get_pin: Optional[PinCallback] = None
        self._get_confirm: Optional[ConfirmCallback] = None

    def set_get_pin_callback(self, fn: PinCallback) -> None:
        self._get_pin = fn

    def set_get_confirm_callback(self, fn: ConfirmCallback) -> None:
        self._get_confirm = fn

    def ask_pin(self, request: PromptRequest) -> bytes:
        if self._get_pin is None:
            raise DeviceError("no_pin_callback")
        return self._get_pin(request)

    def ask_confirm(self, request: PromptRequest) -> bool:
        if self._get_confirm is None:
            return False
        return bool(self._get_confirm(request))

    def reset(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def describe(self) -> Dict[str, Any]:
        return {"device": self.name}

    def _reacquire(self) -> None:
        raise DeviceUnavailable("reacquire_unsupported")

    def _cipher(
        self,
        derivation_path: str,
        is_encrypt: bool,
        key_name: str,
        value: bytes,
        iv: bytes,
        ask_on_encrypt: bool,
        ask_on_decrypt: bool,
    ) -> Tuple[bytes, ResultStatus]:
        raise NotImplementedError

    def cipher_key_value(
        self,
        derivation_path: str,
        is_encrypt: bool,
        key_name: str,
        payload: bytes,
        iv: bytes,
        ask_on_encrypt: bool = True,
        ask_on_decrypt: bool = True,
    ) -> Tuple[bytes, ResultStatus]:
        """
        Encrypt: payload is the raw plaintext, zero-padded here to the block size.
        Decrypt: payload is block-aligned hex text, decoded here to raw bytes.
        """
        if is_encrypt:
            value = pad_plaintext(payload)
        else:
            value = from_hex(payload)
        if len(value) % BLOCK_SIZE != 0:
            raise DeviceError(f"value_not_block_aligned:{len(value)}")

        args = (derivation_path, is_encrypt, key_name, value, iv, ask_on_encrypt, ask_on_decrypt)
        try:
            return self._cipher(*args)
        except TransportLost as e:
            log.info("Lost the device: %s", e)
            if not self.ask_confirm(RECONNECT_REQUEST):
                raise DeviceUnavailable(f"device_disconnected:{e}")
        self._reacquire()
        return self._cipher(*args)


DUMMY_SEED = b"trezorcipher dummy device"


class DummySession(WalletSession):
    """
    Deterministic stand-in for a hardware wallet.

    Follows the SLIP-0011 key schedule with AES-256-CBC; the secret node key is
    an HMAC of a fixed seed, the derivation path and the passphrase instead of a
    BIP-32 node. Optional PIN and passphrase protection go through the same
    prompt callbacks a real device would trigger.
    """

    name = "dummy"

    def __init__(self, seed: bytes = DUMMY_SEED, pin: Optional[str] = None, passphrase_protection: bool = False):
        super().__init__()
        self._seed = seed
        self._pin = pin
        self._passphrase_protection = passphrase_protection
        self._unlocked = pin is None
        self._passphrase: Optional[bytes] = None

    def reset(self) -> None:
        self._unlocked = self._pin is None
        self._passphrase = None

    def describe(self) -> Dict[str, Any]:
        return {
            "device": self.name,
            "model": "dummy",
            "pin_protection": self._pin is not None,
            "passphrase_protection": self._passphrase_protection,
            "unlocked": self._unlocked,
        }

    def _unlock(self) -> None:
        if self._unlocked:
            return
        entered = self.ask_pin(PIN_REQUEST)
        if not hmac.compare_digest(entered, self._pin.encode("utf-8")):
            raise DeviceError("pin_invalid")
        self._unlocked = True

    def _node_key(self, derivation_path: str) -> bytes:
        if self._passphrase_protection and self._passphrase is None:
            self._passphrase = self.ask_pin(PASSPHRASE_REQUEST)
        material = derivation_path.encode("utf-8") + b"\x00" + (self._passphrase or b"")
        return hmac.new(self._seed, material, hashlib.sha512).digest()[:32]

    def _cipher(self, derivation_path, is_encrypt, key_name, value, iv, ask_on_encrypt, ask_on_decrypt):
        self._unlock()
        node = self._node_key(derivation_path)
        digest = hmac.new(node, slip11_key_label(key_name, ask_on_encrypt, ask_on_decrypt), hashlib.sha512).digest()
        key = digest[:32]
        if len(iv) != BLOCK_SIZE:
            iv = digest[32:48]

        cipher = Cipher(algorithms.AES(key), modes.CBC(iv))
        op = cipher.encryptor() if is_encrypt else cipher.decryptor()
        return op.update(value) + op.finalize(), ResultStatus.CIPHERED_VALUE_RETURNED


def open_device(dummy: bool = False, path: Optional[str] = None) -> WalletSession:
    if dummy:
        return DummySession()

    from .trezor import TrezorSession

    try:
        return TrezorSession(path=path)
    except CipherError:
        raise
    except Exception as e:
        raise DeviceUnavailable(f"no_device:{e}")
