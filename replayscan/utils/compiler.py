import copy
import hashlib
import json
import os
import platform
import stat
import subprocess
import sys
from functools import cache

from .common import fetch
from .constants import SOLC_DIR
from .helpers import create_dirs
from .logger import logger
from .custom_types import SourceMetadata
from .custom_exceptions import CompileError

SOLC_LIST_URL = "https://raw.githubusercontent.com/ethereum/solc-bin/refs/heads/gh-pages/{platform}/list.json"
SOLC_BINARY_URL = "https://binaries.soliditylang.org/{platform}/{path}"
SOLC_TIMEOUT = 120


def solc_platform() -> str:
    if sys.platform == "linux":
        return "linux-amd64"
    if sys.platform == "darwin":
        # solc-bin ships universal macOS builds under the amd64 name
        return "macosx-amd64"
    if sys.platform == "win32":
        return "windows-amd64"
    raise CompileError(f"No solc builds for platform {sys.platform} ({platform.machine()})")


@cache
def list_solc_builds(solc_os: str) -> dict[str, dict]:
    """Index of the published solc builds for a platform, keyed by long version."""
    builds = fetch(SOLC_LIST_URL.format(platform=solc_os)).json()["builds"]
    return {build["longVersion"]: build for build in builds}


def ensure_compiler(long_version: str) -> str:
    """
    Return the path of a local solc binary for `long_version`
    (e.g. "0.8.24+commit.e11b9ed9"), downloading and checksumming it once.
    """
    solc_os = solc_platform()
    build = list_solc_builds(solc_os).get(long_version)
    if build is None:
        raise CompileError(f'solc "{long_version}" is not published for {solc_os}')

    compiler_path = os.path.join(SOLC_DIR, build["path"])
    if os.path.isfile(compiler_path):
        logger.info(f"Using cached compiler {long_version}")
        return compiler_path

    logger.info(f"Downloading compiler {long_version}")
    binary = fetch(SOLC_BINARY_URL.format(platform=solc_os, path=build["path"])).content

    expected = build["sha256"].removeprefix("0x")
    actual = hashlib.sha256(binary).hexdigest()
    if actual != expected:
        raise CompileError(
            f"Compiler checksum mismatch for {long_version}: expected {expected}, got {actual}"
        )

    create_dirs(compiler_path)
    try:
        with open(compiler_path, "wb") as compiler_file:
            compiler_file.write(binary)
    except OSError as e:
        raise CompileError(f"Failed to save compiler to {compiler_path}: {e}")
    os.chmod(compiler_path, os.stat(compiler_path).st_mode | stat.S_IEXEC)
    return compiler_path


def run_solc(compiler_path: str, solc_input: dict) -> dict:
    try:
        process = subprocess.run(
            [compiler_path, "--standard-json"],
            input=json.dumps(solc_input).encode(),
            capture_output=True,
            check=True,
            timeout=SOLC_TIMEOUT,
        )
    except subprocess.CalledProcessError as e:
        raise CompileError(f"solc exited with {e.returncode}: {e.stderr.decode()}")
    except subprocess.TimeoutExpired:
        raise CompileError(f"solc timed out after {SOLC_TIMEOUT}s")
    except OSError as e:
        raise CompileError(f"Failed to run {compiler_path}: {e}")

    try:
        output = json.loads(process.stdout)
    except json.JSONDecodeError as e:
        raise CompileError(f"solc returned malformed JSON: {e}")

    for diagnostic in output.get("errors", []):
        if diagnostic.get("severity") == "warning":
            logger.warn(diagnostic.get("message", "solc warning"))

    errors = [
        diagnostic.get("formattedMessage", diagnostic.get("message"))
        for diagnostic in output.get("errors", [])
        if diagnostic.get("severity") == "error"
    ]
    if errors:
        raise CompileError("\n".join(errors))
    return output


def select_contract(solc_output: dict, contract_name: str) -> dict:
    matches = [
        (source_path, contract)
        for source_path, contracts in solc_output.get("contracts", {}).items()
        for name, contract in contracts.items()
        if name == contract_name
    ]
    if not matches:
        raise CompileError(f"Contract {contract_name} not found in solc output")
    if len(matches) > 1:
        paths = ", ".join(source_path for source_path, _ in matches)
        raise CompileError(f"Contract {contract_name} is defined in several sources: {paths}")

    source_path, contract = matches[0]
    logger.okay(f"Compiled {contract_name}", source_path)
    return contract


def compile_source_metadata(
    contract_code: SourceMetadata, libraries: dict | None = None
) -> dict:
    """Compile explorer-reported sources with the compiler and settings they were verified with."""
    compiler_path = ensure_compiler(contract_code["compiler"].removeprefix("v"))

    solc_input = copy.deepcopy(contract_code["solcInput"])
    if libraries:
        logger.okay("Linking libraries", libraries)
        solc_input.setdefault("settings", {}).setdefault("libraries", {}).update(
            libraries
        )

    return select_contract(run_solc(compiler_path, solc_input), contract_code["name"])
