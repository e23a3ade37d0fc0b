from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import BinaryIO, Optional, Union

from .config import AppConfig
from .device import SUCCESS_STATUSES, WalletSession
from .errors import DeviceError, DeviceProtocolViolation, DeviceResetFailed
from .log import build_log_context, encode_log_context, get_logger
from .padding import encode_result, pad_ciphertext
from .prompt import PromptBackend, deny_confirmation
from .source import STDIN_SENTINEL, resolve_input

log = get_logger("flow")


class Mode(enum.Enum):
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"


@dataclass(frozen=True)
class CipherRequest:
    mode: Mode
    key_name: str
    hex_mode: bool = False
    input_path: str = STDIN_SENTINEL
    env_value: Optional[Union[str, bytes]] = None


def _ctx(**kwargs) -> str:
    return encode_log_context(build_log_context(**kwargs))


def run_cipher_flow(
    cfg: AppConfig,
    session: WalletSession,
    backend: PromptBackend,
    request: CipherRequest,
    stdin: Optional[BinaryIO] = None,
) -> bytes:
    """
    One operation, in order: wire the prompts, reset the device, read the
    value, shape it, call the device, check the status, encode the result.
    Any failure ends the run; nothing is retried.
    """
    session.set_get_pin_callback(backend.get_secret)
    session.set_get_confirm_callback(deny_confirmation)

    log.info("Setting Trezor device state to the initial state.")
    try:
        session.reset()
    except DeviceResetFailed:
        raise
    except DeviceError as e:
        raise DeviceResetFailed(f"reset_failed:{e}")

    data = resolve_input(request.env_value, request.input_path, stdin=stdin)

    is_encrypt = request.mode is Mode.ENCRYPT
    if is_encrypt:
        payload = data
    else:
        payload = pad_ciphertext(data, already_hex=request.hex_mode)

    log.info(
        "request %s",
        _ctx(
            mode=request.mode.value,
            key_name=request.key_name,
            path=cfg.device.derivation_path,
            payload_len=len(payload),
            hex=request.hex_mode,
        ),
    )
    log.info("Sent a request to a Trezor device (please confirm the operation if required).")

    result, status = session.cipher_key_value(
        cfg.device.derivation_path,
        is_encrypt,
        request.key_name,
        payload,
        cfg.device.iv,
        cfg.device.ask_on_encrypt,
        cfg.device.ask_on_decrypt,
    )
    if status not in SUCCESS_STATUSES:
        raise DeviceProtocolViolation(f"unexpected_status:{status.value}")

    return encode_result(result, hex_output=is_encrypt and request.hex_mode)
