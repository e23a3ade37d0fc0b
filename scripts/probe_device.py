import argparse

from trezorcipher.device import open_device
from trezorcipher.errors import CipherError


def _print_facts(facts) -> None:
    print("device:")
    for k, v in facts.items():
        print(f"  {k:<22} = {v}")


def main():
    parser = argparse.ArgumentParser(description="Print what the hardware wallet reports about itself")
    parser.add_argument("--dummy", action="store_true", help="probe the built-in dummy device")
    parser.add_argument("--path", default=None, help="transport path, e.g. webusb:001:1")
    parser.add_argument("--no-reset", action="store_true", help="do not reset the session before probing")
    args = parser.parse_args()

    try:
        s = open_device(dummy=args.dummy, path=args.path)
    except CipherError as e:
        print(f"No device found or error: {e}")
        return 1

    try:
        if not args.no_reset:
            try:
                s.reset()
                print("reset: ok")
            except CipherError as e:
                print(f"reset: failed ({e})")
        _print_facts(s.describe())
    finally:
        s.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
