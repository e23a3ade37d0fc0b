from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError

DEFAULT_DERIVATION_PATH = "m/10019'/1'"
DEFAULT_IV = b"trezorCipher IV\x00"
DEFAULT_KEY_NAME = "unnamed key"
DEFAULT_VALUE_ENV = "TREZOR_CIPHER_VALUE"

CRYPTSETUP_ASKPASS_PATH = "/lib/cryptsetup/askpass"
SYSTEMD_ASKPASS_PATH = "systemd-ask-password"

IV_SIZE = 16


@dataclass
class DeviceConfig:
    derivation_path: str = DEFAULT_DERIVATION_PATH
    iv: bytes = DEFAULT_IV
    ask_on_encrypt: bool = True
    ask_on_decrypt: bool = True


@dataclass
class PromptConfig:
    askpass_candidates: List[str] = field(
        default_factory=lambda: [CRYPTSETUP_ASKPASS_PATH, SYSTEMD_ASKPASS_PATH]
    )
    pinentry_program: str = "pinentry"
    relay_pty: bool = True


@dataclass
class InputConfig:
    value_env: str = DEFAULT_VALUE_ENV
    default_key_name: str = DEFAULT_KEY_NAME


@dataclass
class AppConfig:
    device: DeviceConfig = field(default_factory=DeviceConfig)
    prompt: PromptConfig = field(default_factory=PromptConfig)
    input: InputConfig = field(default_factory=InputConfig)


def _parse_iv(raw: Dict[str, Any]) -> bytes:
    v = raw.get("iv_hex")
    if v is None:
        return DEFAULT_IV
    s = str(v).strip().lower().replace("0x", "").replace(" ", "")
    try:
        return bytes.fromhex(s)
    except ValueError:
        raise ConfigError("bad_iv_hex")


def validate_config(cfg: AppConfig) -> AppConfig:
    if len(cfg.device.iv) != IV_SIZE:
        raise ConfigError(f"bad_iv_len:{len(cfg.device.iv)}")
    if not cfg.device.derivation_path.startswith("m/"):
        raise ConfigError(f"bad_derivation_path:{cfg.device.derivation_path}")
    if not cfg.input.value_env:
        raise ConfigError("empty_value_env")
    return cfg


def load_config(path: Optional[str] = None) -> AppConfig:
    """
    Build the configuration from an optional YAML file.
    Missing sections and keys keep their defaults.
    """
    if path is None:
        return validate_config(AppConfig())

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw: Dict[str, Any] = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"config_unreadable:{e}")
    except yaml.YAMLError as e:
        raise ConfigError(f"config_invalid_yaml:{e}")

    if not isinstance(raw, dict):
        raise ConfigError("config_not_a_mapping")

    dev = raw.get("device", {}) or {}
    prm = raw.get("prompt", {}) or {}
    inp = raw.get("input", {}) or {}

    candidates = prm.get("askpass_candidates")
    if candidates is None:
        candidates = [CRYPTSETUP_ASKPASS_PATH, SYSTEMD_ASKPASS_PATH]

    cfg = AppConfig(
        device=DeviceConfig(
            derivation_path=str(dev.get("derivation_path", DEFAULT_DERIVATION_PATH)),
            iv=_parse_iv(dev),
            ask_on_encrypt=bool(dev.get("ask_on_encrypt", True)),
            ask_on_decrypt=bool(dev.get("ask_on_decrypt", True)),
        ),
        prompt=PromptConfig(
            askpass_candidates=[str(c) for c in candidates],
            pinentry_program=str(prm.get("pinentry_program", "pinentry")),
            relay_pty=bool(prm.get("relay_pty", True)),
        ),
        input=InputConfig(
            value_env=str(inp.get("value_env", DEFAULT_VALUE_ENV)),
            default_key_name=str(inp.get("default_key_name", DEFAULT_KEY_NAME)),
        ),
    )
    return validate_config(cfg)
