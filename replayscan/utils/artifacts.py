import json
import os
import re

from .logger import logger
from .helpers import hex_to_bytes
from .compiler import compile_source_metadata
from .custom_types import BinaryConfig, LocalArtifact, SourceMetadata
from .custom_exceptions import CompileError, VerificationInputError

# solc placeholders left in place of unlinked library addresses
LINK_PLACEHOLDER_RE = re.compile(r"__\$[0-9a-fA-F]{34}\$__|__[A-Za-z0-9_:./$]{36}__")


def _bytecode_object(bytecode) -> str:
    """Hardhat stores the bytecode as a string, solc and Foundry as {"object": ...}."""
    if isinstance(bytecode, dict):
        return bytecode.get("object", "")
    return bytecode or ""


def _to_linked_bytes(bytecode_object: str, contract_name: str) -> bytes:
    if LINK_PLACEHOLDER_RE.search(bytecode_object):
        raise VerificationInputError(
            f"Unlinked bytecode is not supported for verification ({contract_name})"
        )
    return hex_to_bytes(bytecode_object)


def parse_immutables(deployed_bytecode) -> dict[int, int]:
    immutables = {}
    if isinstance(deployed_bytecode, dict):
        for refs in deployed_bytecode.get("immutableReferences", {}).values():
            for ref in refs:
                immutables[ref["start"]] = ref["length"]
    return immutables


def parse_compiled_contract(compiled_contract: dict, contract_name: str) -> LocalArtifact:
    """
    Build a LocalArtifact from solc standard-json output of one contract, or
    from a Foundry/Hardhat artifact file (which keep bytecode at the top level).
    """
    evm = compiled_contract.get("evm", compiled_contract)
    bytecode = evm.get("bytecode")
    deployed_bytecode = evm.get("deployedBytecode")
    if bytecode is None:
        raise CompileError(f"No creation bytecode in artifact of {contract_name}")

    return {
        "abi": compiled_contract.get("abi", []),
        "creation_bytecode": _to_linked_bytes(
            _bytecode_object(bytecode), contract_name
        ),
        "immutables": parse_immutables(deployed_bytecode),
    }


def load_artifact_file(path: str, contract_name: str) -> LocalArtifact:
    if not os.path.isfile(path):
        raise CompileError(f"Artifact file not found: {path}")

    logger.info(f"Loading local artifact {path}")
    with open(path, mode="r") as artifact_file:
        return parse_compiled_contract(json.load(artifact_file), contract_name)


class ArtifactProvider:
    """
    Produces the LocalArtifact of a contract: from a prebuilt artifact when one
    is configured for its address, otherwise by compiling the explorer-reported
    sources with the reported compiler (solc builds are cached by version).
    """

    def __init__(self, binary_config: BinaryConfig):
        self.binary_config = binary_config

    def build(
        self, contract_address: str, contract_code: SourceMetadata
    ) -> LocalArtifact:
        artifacts = self.binary_config.get("artifacts", {})
        if contract_address in artifacts:
            return load_artifact_file(artifacts[contract_address], contract_code["name"])

        compiled_contract = compile_source_metadata(
            contract_code, self.binary_config.get("libraries")
        )
        return parse_compiled_contract(compiled_contract, contract_code["name"])
