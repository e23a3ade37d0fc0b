from __future__ import annotations

import argparse
import os
import sys
from typing import List, Optional

from .cipher_flow import CipherRequest, Mode, run_cipher_flow
from .config import CRYPTSETUP_ASKPASS_PATH, DEFAULT_VALUE_ENV, SYSTEMD_ASKPASS_PATH, load_config
from .device import open_device
from .errors import EXIT_OK, EXIT_USAGE, CipherError, ConfigError
from .log import get_logger, setup_logging
from .prompt import select_backend
from .source import STDIN_SENTINEL

log = get_logger("cli")


class UsageParser(argparse.ArgumentParser):
    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"Error: {message}\n")


def build_parser() -> UsageParser:
    parser = UsageParser(
        prog="trezor-cipher",
        description="Encrypt or decrypt a short value with a Trezor (SLIP-0011 CipherKeyValue).",
    )
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("-e", "--encrypt", action="store_true", help="encrypt a key")
    mode.add_argument("-d", "--decrypt", action="store_true", help="decrypt a key")
    parser.add_argument("-D", "--dummy", action="store_true", help="imitate a dummy Trezor device")
    parser.add_argument(
        "-H",
        "--hex",
        action="store_true",
        help="consider encrypted key to be HEX-encoded (for both --encrypt and --decrypt)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="print messages about what is going on")
    parser.add_argument(
        "-k", "--key-name", default=None, help="sets the name of a key to be encrypted/decrypted with the Trezor"
    )
    parser.add_argument(
        "-p",
        "--askpass-path",
        default=None,
        help=(
            "sets the path of the utility to ask the PIN/Passphrase (for Trezor) "
            f'[default: "{CRYPTSETUP_ASKPASS_PATH}", "{SYSTEMD_ASKPASS_PATH}"]'
        ),
    )
    parser.add_argument(
        "-P",
        "--use-pinentry",
        action="store_true",
        help='use "pinentry" utility to ask for PIN/Passphrase instead of "askpass"',
    )
    parser.add_argument(
        "-i",
        "--input-value-file",
        default=STDIN_SENTINEL,
        help=(
            'sets the path of the file to read the input value [default: "-" (stdin)]; '
            f"otherwise the input value can be passed in the environment variable {DEFAULT_VALUE_ENV}"
        ),
    )
    parser.add_argument("-c", "--config", default=None, help="YAML configuration file")
    parser.add_argument(
        "--no-pty",
        action="store_true",
        help="run the askpass utility directly instead of behind a pseudo-terminal",
    )
    return parser


def _key_name(value: str) -> str:
    # undecodable argv bytes arrive as lone surrogates
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise ConfigError("key_name_not_utf8")
    return value


def _env_value(name: str) -> Optional[bytes]:
    if hasattr(os, "environb"):
        return os.environb.get(name.encode("utf-8"))
    v = os.environ.get(name)
    return None if v is None else v.encode("utf-8")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        cfg = load_config(args.config)
        if args.no_pty:
            cfg.prompt.relay_pty = False

        request = CipherRequest(
            mode=Mode.ENCRYPT if args.encrypt else Mode.DECRYPT,
            key_name=_key_name(args.key_name if args.key_name is not None else cfg.input.default_key_name),
            hex_mode=args.hex,
            input_path=args.input_value_file,
            env_value=_env_value(cfg.input.value_env),
        )
        backend = select_backend(cfg.prompt, use_pinentry=args.use_pinentry, askpass_path=args.askpass_path)
        session = open_device(dummy=args.dummy)
        try:
            with backend:
                result = run_cipher_flow(cfg, session, backend, request)
        finally:
            session.close()
    except CipherError as e:
        log.error("Error: %s", e)
        return e.exit_code

    out = sys.stdout.buffer
    out.write(result)
    out.flush()
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
