"""
trezorcipher: encrypt or decrypt a short secret with a hardware wallet.

The device performs SLIP-0011 CipherKeyValue on a fixed derivation path;
this package shapes the payload, resets the device, and relays PIN and
passphrase requests to an askpass utility or a pinentry agent.
"""

from .cipher_flow import CipherRequest, Mode, run_cipher_flow
from .config import AppConfig, load_config
from .device import DummySession, ResultStatus, WalletSession, open_device
from .padding import pad_ciphertext, pad_plaintext
from .prompt import PromptRequest, select_backend

__version__ = "0.1.0"
__all__ = [
    "AppConfig",
    "CipherRequest",
    "DummySession",
    "Mode",
    "PromptRequest",
    "ResultStatus",
    "WalletSession",
    "load_config",
    "open_device",
    "pad_ciphertext",
    "pad_plaintext",
    "run_cipher_flow",
    "select_backend",
]
