from __future__ import annotations

from .errors import EmptyCiphertext, MalformedHex, MalformedHexLength

BLOCK_SIZE = 16
HEX_BLOCK_SIZE = BLOCK_SIZE * 2
HEX_PAD = b"00"


def to_hex(data: bytes) -> bytes:
    return data.hex().encode("ascii")


def from_hex(text: bytes) -> bytes:
    try:
        return bytes.fromhex(text.decode("ascii"))
    except (UnicodeDecodeError, ValueError):
        raise MalformedHex("not_hex")


def hex_padding_length(hex_len: int) -> int:
    """Number of "0" characters needed to reach the next 32-char boundary."""
    return (HEX_BLOCK_SIZE - hex_len % HEX_BLOCK_SIZE) % HEX_BLOCK_SIZE


def pad_ciphertext(data: bytes, already_hex: bool = False) -> bytes:
    """
    Shape a ciphertext into the hex text the device facade expects on decrypt:
    hex-encode raw input, then right-pad with "00" pairs to a multiple of 32
    characters (16 raw bytes).
    """
    if already_hex:
        hexed = data.strip()
    else:
        hexed = to_hex(data)

    if len(hexed) % 2 != 0:
        raise MalformedHexLength(f"odd_hex_length:{len(hexed)}")
    if not hexed:
        raise EmptyCiphertext("no_data")

    return hexed + HEX_PAD * (hex_padding_length(len(hexed)) // 2)


def pad_plaintext(value: bytes) -> bytes:
    """
    Zero-pad a plaintext to the block size; an empty value becomes one zero block.
    """
    if not value:
        return b"\x00" * BLOCK_SIZE
    rem = len(value) % BLOCK_SIZE
    if rem == 0:
        return bytes(value)
    return bytes(value) + b"\x00" * (BLOCK_SIZE - rem)


def encode_result(result: bytes, hex_output: bool) -> bytes:
    if hex_output:
        return to_hex(result)
    return result
