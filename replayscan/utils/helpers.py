import os


def create_dirs(path: str) -> None:
    """
    Create all parent directories for a given path.

    Args:
        path: File path for which to create parent directories
    """
    os.makedirs(os.path.dirname(path), exist_ok=True)


def strip_0x(value: str) -> str:
    return value[2:] if value[:2] in ("0x", "0X") else value


def hex_to_bytes(value: str | bytes | None) -> bytes:
    """
    Convert a hex string (with or without the 0x prefix) to bytes.
    `None` and empty strings become empty bytes, bytes pass through.
    """
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return bytes.fromhex(strip_0x(value.strip()))


def bytes_to_hex(value: bytes) -> str:
    return "0x" + value.hex()


def to_int(value: str | int | None) -> int | None:
    """Parse a JSON-RPC quantity ("0x1a") or a plain integer."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(value, 16) if value[:2] in ("0x", "0X") else int(value)


def to_quantity(value: int) -> str:
    return hex(value)
