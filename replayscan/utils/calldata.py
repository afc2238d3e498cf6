import json
import os

from .logger import logger
from .encoder import encode_constructor_arguments
from .helpers import hex_to_bytes
from .custom_types import BinaryConfig, UserConstructorArgs
from .custom_exceptions import CalldataError


def get_constructor_abi(abi: list | None) -> list | None:
    """
    Extract the constructor `inputs` from a contract ABI.

    Returns:
        The constructor inputs list or None if the ABI has no constructor
    """
    for entry in abi or []:
        if entry.get("type") == "constructor":
            return entry.get("inputs", [])
    return None


def read_constructor_args_file(path: str) -> list[str]:
    """
    Read constructor arguments from a file: either a JSON list, or values
    separated by whitespace.
    """
    if not os.path.isfile(path):
        raise CalldataError(f"Constructor args file not found: {path}")

    with open(path, mode="r") as args_file:
        content = args_file.read()

    if path.lower().endswith(".json"):
        try:
            args = json.loads(content)
        except json.JSONDecodeError as e:
            raise CalldataError(f"Constructor args file {path} is not valid JSON: {e}") from None
        if not isinstance(args, list):
            raise CalldataError(f"Constructor args file {path} must hold a JSON list")
        return args

    return content.split()


def get_user_constructor_args(
    contract_address: str, binary_config: BinaryConfig
) -> UserConstructorArgs | None:
    """Collect the explicitly configured constructor args for `contract_address`."""
    user_args: UserConstructorArgs = {}

    if contract_address in binary_config.get("constructor_args_path", {}):
        path = binary_config["constructor_args_path"][contract_address]
        logger.info(f"Reading constructor args from {path}")
        user_args["args"] = read_constructor_args_file(path)
    elif contract_address in binary_config.get("constructor_args", {}):
        user_args["args"] = binary_config["constructor_args"][contract_address]

    if contract_address in binary_config.get("constructor_calldata", {}):
        user_args["encoded"] = binary_config["constructor_calldata"][contract_address]

    if "args" in user_args and "encoded" in user_args:
        logger.warn(
            f"Both typed and encoded constructor args are set for {contract_address}, "
            "the typed ones take precedence"
        )

    return user_args or None


def encode_user_constructor_args(
    user_args: UserConstructorArgs | None, constructor_abi: list | None
) -> bytes | None:
    """
    Turn explicitly supplied constructor args into bytes.
    Typed args are ABI-encoded against the constructor, pre-encoded hex is
    used verbatim. Returns None when nothing was supplied.

    Raises:
        CalldataError: If the number of typed args differs from the constructor's
    """
    if not user_args:
        return None

    if "args" in user_args:
        args = user_args["args"]
        if constructor_abi is None:
            if args:
                logger.warn(
                    "Constructor args provided for contract without constructor, ignored"
                )
            return b""
        if len(constructor_abi) != len(args):
            raise CalldataError(
                f"Mismatch of constructor arguments length. "
                f"Expected {len(constructor_abi)}, got {len(args)}"
            )
        logger.info("Encoding constructor args from config")
        return hex_to_bytes(encode_constructor_arguments(constructor_abi, args))

    logger.info("Using prepared constructor calldata from config")
    try:
        return hex_to_bytes(user_args["encoded"])
    except ValueError as e:
        raise CalldataError(f"Invalid constructor calldata hex: {e}") from None


def resolve_constructor_args(
    provider_reported_args: bytes,
    user_encoded_args: bytes | None,
    creation_code_on_chain: bytes | None,
    local_creation_bytecode: bytes,
) -> bytes:
    """
    Pick the constructor args appended to the local creation bytecode.

    Explicit user args win and are never re-derived. Otherwise the explorer
    reported args are used, unless the on-chain creation input doesn't end
    with them: then, if the on-chain input is at least as long as the local
    bytecode, its tail past the local bytecode is taken instead.
    """
    if user_encoded_args is not None:
        return user_encoded_args

    constructor_args = provider_reported_args
    if creation_code_on_chain is None:
        return constructor_args

    if not creation_code_on_chain.endswith(constructor_args):
        if len(creation_code_on_chain) >= len(local_creation_bytecode):
            constructor_args = creation_code_on_chain[len(local_creation_bytecode) :]
            logger.warn(
                "Explorer constructor args don't match the creation transaction input, "
                f"using the last {len(constructor_args)} bytes of it instead"
            )
        else:
            logger.warn(
                "Explorer constructor args don't match the creation transaction input, "
                "which is shorter than the local bytecode; keeping explorer args"
            )

    return constructor_args
