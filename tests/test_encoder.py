import pytest

from replayscan.utils.encoder import (
    encode_constructor_arguments,
    split_list_literal,
)
from replayscan.utils.custom_exceptions import EncoderError


def word(value: int) -> str:
    return format(value, "064x")


def inputs(*types):
    return [{"name": f"arg{i}", "type": t} for i, t in enumerate(types)]


def test_encode_static_args():
    address = "0x3F1c547b21f65e10480dE3ad8E19fAAC46C95034"
    encoded = encode_constructor_arguments(
        inputs("address", "uint256", "bool"), [address, "0x10", "true"]
    )
    assert encoded == (
        "000000000000000000000000" + address[2:].lower() + word(16) + word(1)
    )


def test_encode_negative_int():
    assert encode_constructor_arguments(inputs("int8"), [-1]) == "f" * 64


def test_encode_int_out_of_range_raises():
    with pytest.raises(EncoderError, match="out of range"):
        encode_constructor_arguments(inputs("uint8"), [256])


def test_encode_string_uses_offset():
    encoded = encode_constructor_arguments(inputs("uint256", "string"), [7, "abc"])
    assert encoded == (
        word(7) + word(64) + word(3) + "616263".ljust(64, "0")
    )


def test_encode_dynamic_array_from_literal():
    encoded = encode_constructor_arguments(inputs("uint256[]"), ["[1, 2]"])
    assert encoded == word(32) + word(2) + word(1) + word(2)


def test_encode_fixed_array_is_inline():
    encoded = encode_constructor_arguments(inputs("uint256[2]"), [[1, 2]])
    assert encoded == word(1) + word(2)


def test_encode_fixed_array_wrong_size_raises():
    with pytest.raises(EncoderError, match="Expected 2 elements"):
        encode_constructor_arguments(inputs("uint256[2]"), [[1, 2, 3]])


def test_encode_tuple_with_dynamic_member():
    abi = [
        {
            "name": "config",
            "type": "tuple",
            "components": [
                {"name": "id", "type": "uint256"},
                {"name": "data", "type": "bytes"},
            ],
        }
    ]
    encoded = encode_constructor_arguments(abi, [{"id": 5, "data": "0xabcd"}])
    assert encoded == (
        word(32) + word(5) + word(64) + word(2) + "abcd".ljust(64, "0")
    )


def test_encode_fixed_bytes_right_padded():
    encoded = encode_constructor_arguments(inputs("bytes4"), ["0x12345678"])
    assert encoded == "12345678".ljust(64, "0")


def test_invalid_address_raises():
    with pytest.raises(EncoderError, match="Invalid address"):
        encode_constructor_arguments(inputs("address"), ["0x1234"])


def test_unknown_type_raises():
    with pytest.raises(EncoderError, match="unhandled"):
        encode_constructor_arguments(inputs("fixed128x18"), ["1"])


def test_split_list_literal_keeps_nesting():
    assert split_list_literal('[1, [2, 3], (4, "a")]') == ["1", "[2, 3]", '(4, "a")']
