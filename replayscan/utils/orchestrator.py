from dataclasses import dataclass, field
from enum import Enum

from .logger import logger
from .helpers import to_int
from .binary_verifier import match_bytecodes, print_bytecode_diff
from .calldata import (
    get_constructor_abi,
    encode_user_constructor_args,
    resolve_constructor_args,
)
from .creation import (
    resolve_creation_context,
    get_creation_transaction,
    extract_creation_code,
)
from .replay import ReplayEnvironmentBuilder, DeploymentReplayer
from .custom_types import (
    BytecodeType,
    CreationData,
    ForkConfig,
    LocalArtifact,
    MatchType,
    SourceMetadata,
    UserConstructorArgs,
    VerificationResult,
)
from .custom_exceptions import NodeError, VerificationInputError


class State(Enum):
    RESOLVING_CONTEXT = "resolving_context"
    RESOLVING_ARGS = "resolving_args"
    PREDEPLOY_PATH = "predeploy_path"
    CREATION_CHECK = "creation_check"
    RUNTIME_CHECK = "runtime_check"
    DONE = "done"


@dataclass
class VerificationRequest:
    contract_address: str
    contract_name: str
    user_args: UserConstructorArgs | None = None
    block: int | str | None = None
    ignore: BytecodeType | None = None


@dataclass
class VerificationRun:
    """Everything one verification run has learned so far."""

    request: VerificationRequest
    onchain_code: bytes = b""
    creation_data: CreationData | None = None
    is_predeploy: bool = False
    source: SourceMetadata | None = None
    artifact: LocalArtifact | None = None
    transaction: dict | None = None
    creation_code_on_chain: bytes | None = None
    user_encoded_args: bytes | None = None
    constructor_args: bytes = b""
    results: list[VerificationResult] = field(default_factory=list)

    @property
    def payload(self) -> bytes:
        return self.artifact["creation_bytecode"] + self.constructor_args

    def is_ignored(self, bytecode_type: BytecodeType) -> bool:
        return self.request.ignore is bytecode_type


class VerificationOrchestrator:
    """
    Verifies that the code at an address was produced by a local artifact.

    Runs as a state machine:
      RESOLVING_CONTEXT -> PREDEPLOY_PATH -> DONE
                        -> RESOLVING_ARGS -> CREATION_CHECK -> RUNTIME_CHECK -> DONE
    A creation code mismatch ends the run with a runtime mismatch, without
    replaying the deployment.
    """

    def __init__(
        self,
        provider,
        provenance,
        artifacts,
        fork_config: ForkConfig,
        env_builder: ReplayEnvironmentBuilder | None = None,
        replayer: DeploymentReplayer | None = None,
    ):
        self.provider = provider
        self.provenance = provenance
        self.artifacts = artifacts
        self.fork_config = fork_config
        self.env_builder = env_builder or ReplayEnvironmentBuilder(provider)
        self.replayer = replayer or DeploymentReplayer()
        self._handlers = {
            State.RESOLVING_CONTEXT: self._resolve_context,
            State.RESOLVING_ARGS: self._resolve_args,
            State.PREDEPLOY_PATH: self._verify_predeploy,
            State.CREATION_CHECK: self._check_creation_code,
            State.RUNTIME_CHECK: self._check_runtime_code,
        }

    def run(self, request: VerificationRequest) -> list[VerificationResult]:
        run = VerificationRun(request)
        state = State.RESOLVING_CONTEXT
        while state is not State.DONE:
            logger.log(f"{request.contract_address}: {state.value}")
            state = self._handlers[state](run)
        return run.results

    def _resolve_context(self, run: VerificationRun) -> State:
        address = run.request.contract_address

        run.onchain_code = self.provider.get_code_at(address)
        if not run.onchain_code:
            raise VerificationInputError(f"No bytecode found at address {address}")

        run.creation_data, run.is_predeploy = resolve_creation_context(
            self.provenance, address
        )
        run.source = self.provenance.contract_source_code(
            address, run.request.contract_name
        )
        run.artifact = self.artifacts.build(address, run.source)
        run.user_encoded_args = encode_user_constructor_args(
            run.request.user_args, get_constructor_abi(run.artifact["abi"])
        )

        if run.is_predeploy:
            return State.PREDEPLOY_PATH
        return State.RESOLVING_ARGS

    def _resolve_args(self, run: VerificationRun) -> State:
        tx_hash = run.creation_data["transaction_hash"]
        run.transaction, receipt = get_creation_transaction(self.provider, tx_hash)
        run.creation_code_on_chain = extract_creation_code(
            run.transaction, receipt, run.request.contract_address
        )
        run.constructor_args = resolve_constructor_args(
            run.source["constructor_arguments"],
            run.user_encoded_args,
            run.creation_code_on_chain,
            run.artifact["creation_bytecode"],
        )

        if not run.is_ignored(BytecodeType.CREATION):
            return State.CREATION_CHECK
        logger.info("Creation code comparison is ignored")
        return self._after_creation_check(run)

    def _after_creation_check(self, run: VerificationRun) -> State:
        if run.is_ignored(BytecodeType.RUNTIME):
            logger.info("Runtime code comparison is ignored")
            return State.DONE
        return State.RUNTIME_CHECK

    def _verify_predeploy(self, run: VerificationRun) -> State:
        logger.warn(
            f"Attempting to verify predeployed contract at {run.request.contract_address}. "
            "Ignoring creation code verification."
        )
        run.constructor_args = resolve_constructor_args(
            run.source["constructor_arguments"],
            run.user_encoded_args,
            None,
            run.artifact["creation_bytecode"],
        )
        env, fork = self.env_builder.build(
            self.fork_config, 0, run.source["evm_version"]
        )
        with fork:
            deployed_code = self.replayer.deploy_genesis(fork, env, run.payload)

        match_type = match_bytecodes(deployed_code, run.onchain_code, b"", True)
        self._record(run, BytecodeType.RUNTIME, match_type)
        if match_type.is_none():
            print_bytecode_diff(
                deployed_code, run.onchain_code, run.artifact["immutables"]
            )
        return State.DONE

    def _check_creation_code(self, run: VerificationRun) -> State:
        match_type = match_bytecodes(
            run.payload, run.creation_code_on_chain, run.constructor_args, False
        )
        self._record(run, BytecodeType.CREATION, match_type)

        if match_type.is_none():
            print_bytecode_diff(run.payload, run.creation_code_on_chain, {})
            self._record(
                run,
                BytecodeType.RUNTIME,
                MatchType.NONE,
                "Creation code doesn't match, runtime code comparison skipped",
            )
            return State.DONE

        return self._after_creation_check(run)

    def _check_runtime_code(self, run: VerificationRun) -> State:
        simulation_block = self._get_simulation_block(run)

        env, fork = self.env_builder.build(
            self.fork_config,
            simulation_block,
            run.source["evm_version"],
            run.transaction,
        )
        with fork:
            fork_runtime_code = self.replayer.replay_creation(fork, env, run.payload)

        onchain_runtime_code = self.provider.get_code_at(
            run.request.contract_address, simulation_block
        )
        match_type = match_bytecodes(
            fork_runtime_code, onchain_runtime_code, run.constructor_args, True
        )
        self._record(run, BytecodeType.RUNTIME, match_type)
        if match_type.is_none():
            print_bytecode_diff(
                fork_runtime_code, onchain_runtime_code, run.artifact["immutables"]
            )
        return State.DONE

    def _get_simulation_block(self, run: VerificationRun) -> int:
        block = run.request.block
        if isinstance(block, int) and not isinstance(block, bool):
            # the fork is pinned at block - 1
            if block < 1:
                raise VerificationInputError(
                    f"Invalid block number: {block}, must be at least 1"
                )
            return block
        if block is not None:
            raise VerificationInputError(f"Invalid block number: {block!r}")

        block_number = to_int(run.transaction.get("blockNumber"))
        if block_number is None:
            raise NodeError(
                "Failed to get block number of the contract creation tx "
                f"{run.creation_data['transaction_hash']}, specify it in the config"
            )
        return block_number

    def _record(
        self,
        run: VerificationRun,
        bytecode_type: BytecodeType,
        match_type: MatchType,
        message: str | None = None,
    ) -> None:
        label = f"{bytecode_type.value.capitalize()} code"
        if match_type is MatchType.EXACT:
            logger.okay(f"{label} matched exactly")
        elif match_type is MatchType.PARTIAL:
            logger.warn(f"{label} matched with different metadata")
        else:
            if message is None:
                message = self._describe_settings(run.source)
            logger.error(f"{label} did not match", message)

        run.results.append(VerificationResult(bytecode_type, match_type, message))

    @staticmethod
    def _describe_settings(source: SourceMetadata) -> str:
        optimizer = source.get("optimizer") or {}
        return (
            f"compiler {source['compiler']}, "
            f"optimizer {'enabled' if optimizer.get('enabled') else 'disabled'}"
            f" ({optimizer.get('runs', 'n/a')} runs), "
            f"EVM version {source['evm_version'] or 'default'}"
        )
