import functools
import json
import os
import sys

import requests
import yaml

from .logger import logger
from .custom_types import Config
from .custom_exceptions import NodeError, ExplorerError

# Sections whose keys are contract addresses
ADDRESS_KEYED_SECTIONS = (
    "constructor_args",
    "constructor_calldata",
    "constructor_args_path",
    "artifacts",
    "block",
)


def load_env(variable_name, required=True, masked=False):
    value = os.getenv(variable_name, default=None)

    if required and not value:
        logger.error("Env not found", variable_name)
        sys.exit(1)

    printable_value = mask_text(value) if masked and value is not None else str(value)

    if printable_value:
        logger.okay(f"{variable_name}", printable_value)
    else:
        logger.info(f"{variable_name} var is not set")

    return value


def _check_no_int_keys(section: dict, section_name: str) -> None:
    for key in section:
        if isinstance(key, int):
            raise ValueError(
                f"Key {key!r} in {section_name} was parsed as integer, "
                "quote hex addresses in YAML configs"
            )


def _validate_address_types(config: dict) -> None:
    _check_no_int_keys(config.get("contracts") or {}, "contracts")

    binary_config = config.get("bytecode_comparison") or {}
    for section_name in ADDRESS_KEYED_SECTIONS:
        _check_no_int_keys(
            binary_config.get(section_name) or {},
            f"bytecode_comparison.{section_name}",
        )

    for path, libraries in (binary_config.get("libraries") or {}).items():
        for library_name, library_address in libraries.items():
            if isinstance(library_address, int):
                raise ValueError(
                    f"Address of {library_name} ({path}) in bytecode_comparison.libraries "
                    "was parsed as integer, quote hex addresses in YAML configs"
                )


def load_config(path: str) -> Config:
    extension = os.path.splitext(path)[1].lower()

    with open(path, mode="r") as config_file:
        if extension == ".json":
            config = json.load(config_file)
        elif extension in (".yaml", ".yml"):
            config = yaml.safe_load(config_file)
            if config is None:
                raise ValueError(f"Config {path} is empty or contains only comments")
        else:
            raise ValueError(f"Unsupported config file extension: {extension}")

    _validate_address_types(config)
    return config


def _handle_request_errors(error_class):
    """Turn `requests` failures of the wrapped call into `error_class`."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                response = func(*args, **kwargs)
                response.raise_for_status()
                return response
            except requests.exceptions.HTTPError as http_err:
                raise error_class(f"HTTP error occurred: {http_err}")
            except requests.exceptions.Timeout as timeout_err:
                raise error_class(f"Timeout error occurred: {timeout_err}")
            except requests.exceptions.ConnectionError as conn_err:
                raise error_class(f"Connection error occurred: {conn_err}")
            except requests.exceptions.RequestException as req_err:
                raise error_class(f"Request exception occurred: {req_err}")

        return wrapper

    return decorator


@_handle_request_errors(ExplorerError)
def fetch(url, headers=None):
    logger.log(f"Fetch: {mask_text(url)}")
    return requests.get(url, headers=headers)


@_handle_request_errors(NodeError)
def pull(url, payload=None, headers=None):
    logger.log(f"Pull: {mask_text(url)}")
    return requests.post(url, data=payload, headers=headers)


def mask_text(text, mask_start=3, mask_end=3):
    if len(text) <= mask_start + mask_end:
        return "*" * len(text)
    hidden = len(text) - mask_start - mask_end
    return text[:mask_start] + "*" * hidden + text[-mask_end:]
