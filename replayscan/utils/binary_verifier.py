import cbor2

from .logger import logger, bgYellow, bgRed, bgGreen, to_hex
from .constants import OPCODES, PUSH0, PUSH32
from .custom_types import MatchType


def format_bytecode(bytecode: str) -> str:
    """Converts raw hex for an instruction into a '0x' prefixed string, or empty if none."""
    return "0x" + bytecode[2:] if len(bytecode) > 2 else ""


def extract_metadata_hash(bytecode: bytes) -> bytes:
    """
    Strips Solidity metadata from the end of the bytecode, if present.
    Solidity appends a CBOR metadata section at the end, its length is
    stored big-endian in the last 2 bytes. The region is only stripped
    when it decodes as CBOR, otherwise the bytecode is returned as is.
    """
    if len(bytecode) < 2:
        return bytecode

    metadata_size = int.from_bytes(bytecode[-2:], "big")
    if metadata_size + 2 > len(bytecode):
        return bytecode

    metadata = bytecode[-2 - metadata_size : -2]
    try:
        cbor2.loads(metadata)
    except (cbor2.CBORDecodeError, ValueError):
        return bytecode

    return bytecode[: -2 - metadata_size]


def try_extract_and_compare_bytecode(local: bytes, remote: bytes) -> bool:
    return extract_metadata_hash(local) == extract_metadata_hash(remote)


def is_partial_match(
    local: bytes, remote: bytes, constructor_args: bytes, is_runtime: bool
) -> bool:
    # Runtime code never carries constructor arguments, metadata is at the end
    if not constructor_args or is_runtime:
        return try_extract_and_compare_bytecode(local, remote)

    args_length = len(constructor_args)
    if args_length > len(local) or args_length > len(remote):
        return False

    return try_extract_and_compare_bytecode(
        local[: len(local) - args_length], remote[: len(remote) - args_length]
    )


def match_bytecodes(
    local: bytes, remote: bytes, constructor_args: bytes, is_runtime: bool
) -> MatchType:
    """
    Compare locally derived bytecode with the on-chain one.

    Returns:
        EXACT when byte-identical, PARTIAL when identical once the trailing
        CBOR metadata (and, for creation code, the constructor arguments)
        are stripped from both sides, NONE otherwise.
    """
    if local == remote:
        return MatchType.EXACT
    if is_partial_match(local, remote, constructor_args, is_runtime):
        return MatchType.PARTIAL
    return MatchType.NONE


def parse(bytecode: bytes):
    """
    Parses raw EVM bytecode into a list of instructions:
      [ { 'start': offset, 'length': N, 'op': {...}, 'bytecode': '...' }, ... ]
    """
    instructions = []
    i = 0
    unknown_opcodes = set()

    while i < len(bytecode):
        opcode = bytecode[i]
        if opcode not in OPCODES:
            unknown_opcodes.add(hex(opcode))

        # For PUSH1..PUSH32, the length is 1 + (opcode - PUSH0)
        length = 1 + (opcode - PUSH0 if PUSH0 <= opcode <= PUSH32 else 0)

        instructions.append(
            {
                "start": i,
                "length": length,
                "op": {"name": OPCODES.get(opcode, "INVALID"), "code": opcode},
                "bytecode": bytecode[i : i + length].hex(),
            }
        )

        i += length

    return instructions, unknown_opcodes


def overlaps_any_immutable(
    immutables: dict[int, int], instr_start: int, instr_len: int
) -> bool:
    """Whether [instr_start, instr_start + instr_len) touches any immutable reference region."""
    instr_end = instr_start + instr_len
    return any(
        instr_start < imm_start + imm_len and imm_start < instr_end
        for imm_start, imm_len in immutables.items()
    )


def print_bytecode_diff(
    actual_bytecode: bytes, expected_bytecode: bytes, immutables: dict[int, int]
) -> int:
    """
    Print an instruction-by-instruction diff of two bytecodes (metadata stripped),
    with a few lines of context around every mismatch. Differences inside known
    immutable reference regions are highlighted separately.

    Returns:
        The number of mismatching instructions outside immutable regions
    """
    actual_instructions, unknown_opcodes_a = parse(
        extract_metadata_hash(actual_bytecode)
    )
    expected_instructions, unknown_opcodes_b = parse(
        extract_metadata_hash(expected_bytecode)
    )

    unknown_opcodes = unknown_opcodes_a | unknown_opcodes_b
    if unknown_opcodes:
        logger.warn(f"Detected unknown opcodes: {unknown_opcodes}")

    if len(actual_instructions) != len(expected_instructions):
        logger.warn("Codes have a different length")

    zipped_instructions = list(zip(actual_instructions, expected_instructions))
    mismatches = [
        idx
        for idx, (actual, expected) in enumerate(zipped_instructions)
        if actual["bytecode"] != expected["bytecode"]
    ]
    if not zipped_instructions:
        return 0

    near_lines_count = 3
    checkpoints = {0, len(zipped_instructions) - 1, *mismatches}
    for ind in list(checkpoints):
        start_idx = max(0, ind - near_lines_count)
        end_idx = min(ind + near_lines_count, len(zipped_instructions) - 1)
        checkpoints.update(range(start_idx, end_idx + 1))
    checkpoints = sorted(checkpoints)

    logger.divider()
    logger.info(f'{bgRed("0x0002")} - the actual bytecode differs')
    logger.info(
        f'{bgYellow("0x0001")} - the actual bytecode differs on the immutable reference position'
    )
    logger.info(
        f'{bgGreen("0x0003")} - the expected bytecode value when it doesn\'t match the actual one'
    )
    logger.divider()

    mismatches_outside_immutables = 0
    previous_idx = None
    for cur_idx in checkpoints:
        if previous_idx is not None and previous_idx != cur_idx - 1:
            logger.stdout("...")
        previous_idx = cur_idx

        actual, expected = zipped_instructions[cur_idx]

        if actual["op"]["code"] == expected["op"]["code"]:
            opcode = to_hex(actual["op"]["code"])
            opname = actual["op"]["name"]
        else:
            opcode = (
                bgRed(to_hex(actual["op"]["code"]))
                + " "
                + bgGreen(to_hex(expected["op"]["code"]))
            )
            opname = bgRed(actual["op"]["name"]) + " " + bgGreen(expected["op"]["name"])

        actual_params = format_bytecode(actual["bytecode"])
        expected_params = format_bytecode(expected["bytecode"])

        if actual_params == expected_params:
            params = actual_params
        elif overlaps_any_immutable(immutables, expected["start"], expected["length"]):
            params = bgYellow(actual_params) + " " + bgGreen(expected_params)
        else:
            params = bgRed(actual_params) + " " + bgGreen(expected_params)
            mismatches_outside_immutables += 1

        logger.stdout(f"{to_hex(cur_idx, 4)} {opcode} {opname} {params}")

    return mismatches_outside_immutables
