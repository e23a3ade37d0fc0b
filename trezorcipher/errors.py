from __future__ import annotations

import errno

EXIT_OK = 0
EXIT_NO_DEVICE = 1
EXIT_RESET_FAILED = 2
EXIT_OPERATION_FAILED = 3
EXIT_NO_ASKPASS = 6
EXIT_USAGE = errno.EINVAL
EXIT_FAILURE = 255


class CipherError(RuntimeError):
    exit_code = EXIT_FAILURE


class ConfigError(CipherError):
    exit_code = EXIT_USAGE


class InputReadError(CipherError):
    pass


class EmptyCiphertext(InputReadError):
    pass


class MalformedHex(CipherError):
    pass


class MalformedHexLength(MalformedHex):
    pass


class AskpassNotFound(CipherError):
    exit_code = EXIT_NO_ASKPASS


class PromptError(CipherError):
    exit_code = EXIT_OPERATION_FAILED


class PromptCancelled(PromptError):
    pass


class PromptIOError(PromptError):
    pass


class DeviceError(CipherError):
    exit_code = EXIT_OPERATION_FAILED


class DeviceUnavailable(DeviceError):
    exit_code = EXIT_NO_DEVICE


class DeviceResetFailed(DeviceError):
    exit_code = EXIT_RESET_FAILED


class DeviceProtocolViolation(DeviceError):
    pass
