from dataclasses import dataclass, field
from enum import Enum
from typing import TypedDict, NotRequired


class BinaryConfig(TypedDict):
    hardhat_config_name: NotRequired[str]
    constructor_calldata: NotRequired[dict[str, str]]
    constructor_args: NotRequired[dict[str, list]]
    constructor_args_path: NotRequired[dict[str, str]]
    libraries: NotRequired[dict[str, dict[str, str]]]
    artifacts: NotRequired[dict[str, str]]
    block: NotRequired[dict[str, int]]
    ignore: NotRequired[str]


class Config(TypedDict):
    contracts: dict[str, str]
    explorer_hostname: str
    explorer_token_env_var: NotRequired[str]
    explorer_chain_id: NotRequired[int]
    bytecode_comparison: NotRequired[BinaryConfig]
    fail_on_bytecode_comparison_error: NotRequired[bool]


class CreationData(TypedDict):
    transaction_hash: str
    contract_creator: str


class SourceMetadata(TypedDict):
    name: str
    compiler: str
    solcInput: dict
    constructor_arguments: bytes
    evm_version: str | None
    optimizer: NotRequired[dict]


class LocalArtifact(TypedDict):
    abi: list
    creation_bytecode: bytes
    immutables: dict[int, int]


class UserConstructorArgs(TypedDict):
    args: NotRequired[list]
    encoded: NotRequired[str]


class BytecodeType(Enum):
    CREATION = "creation"
    RUNTIME = "runtime"

    @staticmethod
    def parse(value: str | None) -> "BytecodeType | None":
        if value is None:
            return None
        try:
            return BytecodeType(value.lower())
        except ValueError:
            raise ValueError(
                f'Unknown bytecode type "{value}", expected "creation" or "runtime"'
            ) from None


class MatchType(Enum):
    EXACT = "exact"
    PARTIAL = "partial"
    NONE = "none"

    def is_none(self) -> bool:
        return self is MatchType.NONE


@dataclass
class VerificationResult:
    bytecode_type: BytecodeType
    match_type: MatchType
    message: str | None = None

    def to_json(self) -> dict:
        return {
            "bytecode_type": self.bytecode_type.value,
            "match_type": self.match_type.value,
            "message": self.message,
        }


@dataclass
class ForkConfig:
    remote_rpc_url: str
    local_rpc_url: str
    hardhat_config_path: str
    chain_id: int | None = None


@dataclass
class ReplayEnvironment:
    """Block context and sender state the replayed transaction executes in."""

    block_number: int
    fork_block_number: int
    evm_version: str
    hardfork: str
    timestamp: int | None = None
    coinbase: str | None = None
    difficulty: int | None = None
    prevrandao: str | None = None
    base_fee: int | None = None
    gas_limit: int | None = None
    sender: str | None = None
    sender_nonce: int | None = None
    transaction: dict = field(default_factory=dict)
