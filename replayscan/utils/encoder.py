import re

from .custom_exceptions import EncoderError

INT_TYPE_RE = re.compile(r"^(u?int)(\d*)$")
FIXED_BYTES_RE = re.compile(r"^bytes(\d+)$")
FIXED_ARRAY_RE = re.compile(r"^(.*)\[(\d+)\]$")


def _parse_solidity_int_type(arg_type: str) -> tuple[int, bool]:
    """
    Given a Solidity int/uint type (e.g. 'uint256', 'int128', 'uint', 'int'),
    returns (bits, is_signed).
      - bits = 256 if no explicit size is specified.
      - is_signed = True if it starts with 'int', False if 'uint'.
    """
    match = INT_TYPE_RE.match(arg_type)
    if not match:
        raise EncoderError(f"Invalid integer type format '{arg_type}'.")
    is_signed = not match.group(1).startswith("u")
    bits_str = match.group(2)
    bits = int(bits_str) if bits_str else 256
    return (bits, is_signed)


def to_hex_with_alignment(value: int) -> str:
    """
    Encodes `value` (non-negative integer) as a 32-byte hex string.
    For negative values, you must first apply two's complement.
    """
    return format(value, "064x")


def pad_right(hex_str: str) -> str:
    remainder = len(hex_str) % 64
    if remainder == 0:
        return hex_str
    return hex_str + "0" * (64 - remainder)


def split_list_literal(text: str) -> list[str]:
    """
    Split "[a, [b, c], (d, e)]" or "(a, b)" into its top-level items,
    keeping nested brackets intact.
    """
    text = text.strip()
    if len(text) < 2 or (text[0], text[-1]) not in (("[", "]"), ("(", ")")):
        raise EncoderError(f"Expected a bracketed list, got '{text}'")
    body = text[1:-1].strip()
    if not body:
        return []

    items, depth, current = [], 0, ""
    for char in body:
        if char in "[(":
            depth += 1
        elif char in "])":
            depth -= 1
        if char == "," and depth == 0:
            items.append(current.strip())
            current = ""
        else:
            current += char
    items.append(current.strip())
    return [item.strip('"') for item in items]


def parse_int(value) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    return int(str(value).strip(), 0)


def parse_bool(value) -> bool:
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized not in ("true", "false", "1", "0"):
            raise EncoderError(f"Invalid bool value '{value}'")
        return normalized in ("true", "1")
    return bool(value)


def encode_int(value, bits: int, is_signed: bool) -> str:
    """
    Encodes an integer value (possibly negative if signed) into 32 bytes
    using two's complement for negative values.
    """
    value = parse_int(value)

    if is_signed:
        lower, upper = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    else:
        lower, upper = 0, (1 << bits) - 1
    if not lower <= value <= upper:
        raise EncoderError(f"Value {value} is out of range for {bits}-bit integer")

    if value < 0:
        value = (1 << 256) + value

    return to_hex_with_alignment(value)


def encode_address(address: str) -> str:
    """
    Encodes an address as a 32-byte hex string.
    Assumes 'address' is already a hex string (with '0x' or without).
    """
    address_no_0x = address.strip().lower().removeprefix("0x")
    if len(address_no_0x) != 40:
        raise EncoderError(f"Invalid address '{address}'")
    return to_hex_with_alignment(int(address_no_0x, 16))


def encode_fixed_bytes(value: str, length: int) -> str:
    """
    Encodes fixed-length bytes (e.g., bytes1..bytes32) into 32 bytes.
    """
    raw_hex = value.strip().lower().removeprefix("0x")
    max_hex_len = length * 2
    if len(raw_hex) > max_hex_len:
        raise EncoderError(
            f"Provided bytes length exceeds {length} bytes (max {max_hex_len} hex chars)."
        )
    return raw_hex.ljust(max_hex_len, "0").ljust(64, "0")


def encode_bytes(data: str) -> str:
    """
    Encodes a dynamic `bytes` value as:
      [ 32-byte length, data right-padded to a multiple of 32 bytes ]
    """
    bytes_str = data.strip().lower().removeprefix("0x")
    if len(bytes_str) % 2 != 0:
        raise EncoderError(f"Odd-length hex string '{data}'")
    return to_hex_with_alignment(len(bytes_str) // 2) + pad_right(bytes_str)


def encode_string(value: str) -> str:
    encoded_value_bytes = value.encode("utf-8")
    return to_hex_with_alignment(len(encoded_value_bytes)) + pad_right(
        encoded_value_bytes.hex()
    )


def is_dynamic(arg_type: str, components: list | None = None) -> bool:
    if arg_type in ("bytes", "string") or arg_type.endswith("[]"):
        return True
    fixed_array = FIXED_ARRAY_RE.match(arg_type)
    if fixed_array:
        return is_dynamic(fixed_array.group(1), components)
    if arg_type == "tuple":
        return any(
            is_dynamic(component["type"], component.get("components"))
            for component in components or []
        )
    return False


def _as_list(value) -> list:
    if isinstance(value, str):
        return split_list_literal(value)
    if isinstance(value, dict):
        return list(value.values())
    return list(value)


def encode_sequence(types: list[dict], values: list) -> str:
    """
    Encodes a list of values as a tuple: a static head where dynamic members
    are replaced by offsets (relative to the start of the sequence), followed
    by the dynamic tails in order.
    """
    if len(types) != len(values):
        raise EncoderError(
            f"Mismatch in component count: {len(types)} vs values: {len(values)}"
        )

    heads = []
    tails = []
    for abi_entry, value in zip(types, values):
        encoded = encode_value(abi_entry["type"], abi_entry.get("components"), value)
        if is_dynamic(abi_entry["type"], abi_entry.get("components")):
            heads.append(None)
            tails.append(encoded)
        else:
            heads.append(encoded)

    head_size = sum(32 if head is None else len(head) // 2 for head in heads)

    encoded_heads = ""
    offset = head_size
    tail_index = 0
    for head in heads:
        if head is None:
            encoded_heads += to_hex_with_alignment(offset)
            offset += len(tails[tail_index]) // 2
            tail_index += 1
        else:
            encoded_heads += head

    return encoded_heads + "".join(tails)


def encode_value(arg_type: str, components: list | None, value) -> str:
    if arg_type.endswith("[]"):
        elements = _as_list(value)
        element_type = {"type": arg_type[:-2], "components": components}
        return to_hex_with_alignment(len(elements)) + encode_sequence(
            [element_type] * len(elements), elements
        )

    fixed_array = FIXED_ARRAY_RE.match(arg_type)
    if fixed_array:
        elements = _as_list(value)
        size = int(fixed_array.group(2))
        if len(elements) != size:
            raise EncoderError(
                f"Expected {size} elements for '{arg_type}', got {len(elements)}"
            )
        element_type = {"type": fixed_array.group(1), "components": components}
        return encode_sequence([element_type] * size, elements)

    if arg_type == "tuple":
        return encode_sequence(components or [], _as_list(value))

    if arg_type == "address":
        return encode_address(value)
    if arg_type == "bool":
        return to_hex_with_alignment(int(parse_bool(value)))
    if INT_TYPE_RE.match(arg_type):
        bits, is_signed = _parse_solidity_int_type(arg_type)
        return encode_int(value, bits, is_signed)
    fixed_bytes = FIXED_BYTES_RE.match(arg_type)
    if fixed_bytes:
        return encode_fixed_bytes(value, int(fixed_bytes.group(1)))
    if arg_type == "bytes":
        return encode_bytes(value)
    if arg_type == "string":
        return encode_string(str(value))

    raise EncoderError(f"Unknown or unhandled constructor argument type: {arg_type}")


def encode_constructor_arguments(constructor_abi: list, constructor_args: list) -> str:
    """
    ABI-encode constructor arguments against the constructor `inputs` ABI.
    Values may be typed (from JSON/YAML configs) or strings (from args files).

    Returns:
        The encoded arguments as a hex string without the 0x prefix
    """
    try:
        return encode_sequence(constructor_abi, list(constructor_args))
    except EncoderError:
        raise
    except Exception as e:
        raise EncoderError(f"{type(e).__name__}: {e}") from None
