from .logger import logger
from .helpers import hex_to_bytes, bytes_to_hex, to_int, to_quantity
from .constants import (
    ADDRESS_LENGTH,
    CREATE2_SALT_LENGTH,
    DEFAULT_CREATE2_DEPLOYER,
    DEFAULT_CREATE2_DEPLOYER_RUNTIME_CODE,
    DEFAULT_EVM_VERSION,
    EVM_VERSION_TO_HARDFORK,
    GENESIS_BLOCK_NUMBER,
    PREDEPLOY_DEPLOYER,
    PREDEPLOY_DEPLOYER_BALANCE,
)
from .creation import is_create2_deployer
from .hardhat import ForkHandle, launch_hardhat_fork
from .custom_types import ForkConfig, ReplayEnvironment
from .custom_exceptions import ReplayError, VerificationInputError


def get_hardfork(evm_version: str) -> str:
    hardfork = EVM_VERSION_TO_HARDFORK.get(evm_version.lower())
    if hardfork is None:
        logger.warn(
            f'Unknown EVM version "{evm_version}", falling back to {DEFAULT_EVM_VERSION}'
        )
        hardfork = EVM_VERSION_TO_HARDFORK[DEFAULT_EVM_VERSION]
    return hardfork


def copy_block_context(env: ReplayEnvironment, block: dict) -> None:
    env.timestamp = to_int(block.get("timestamp"))
    env.coinbase = block.get("miner")
    env.difficulty = to_int(block.get("difficulty"))
    env.prevrandao = block.get("mixHash")
    env.base_fee = to_int(block.get("baseFeePerGas")) or 0
    env.gas_limit = to_int(block.get("gasLimit"))


class ReplayEnvironmentBuilder:
    """
    Reconstructs the execution context of a historical block on top of a fork
    of the chain, so that re-executing a deployment observes the same block
    values the original one did.
    """

    def __init__(self, provider, launch_fork=launch_hardhat_fork):
        self.provider = provider
        self.launch_fork = launch_fork

    def build(
        self,
        fork_config: ForkConfig,
        target_block: int,
        evm_version: str | None = None,
        transaction: dict | None = None,
    ) -> tuple[ReplayEnvironment, ForkHandle]:
        """
        Without a `transaction` the environment is the genesis block, forked
        at block 0. With one, the fork is pinned one block before
        `target_block` and the sender's nonce is taken as of that block,
        since the other transactions of `target_block` are not replayed.
        """
        is_genesis = transaction is None
        fork_block_number = (
            GENESIS_BLOCK_NUMBER if is_genesis else target_block - 1
        )
        evm_version = evm_version or DEFAULT_EVM_VERSION
        env = ReplayEnvironment(
            block_number=target_block,
            fork_block_number=fork_block_number,
            evm_version=evm_version,
            hardfork=get_hardfork(evm_version),
        )

        block = self.provider.get_block(target_block, True)
        if block is not None:
            copy_block_context(env, block)
        else:
            logger.warn(f"Block {target_block} not found, using the fork's block context")

        if not is_genesis:
            env.sender = transaction["from"]
            env.sender_nonce = self.provider.get_transaction_count(
                transaction["from"], fork_block_number
            )
            env.transaction = {**transaction, "nonce": to_quantity(env.sender_nonce)}
            logger.info(
                f"Replaying at block {target_block} with nonce {env.sender_nonce} of {env.sender}"
            )

        fork = self.launch_fork(fork_config, fork_block_number, env.hardfork)
        return env, fork


class DeploymentReplayer:
    """Deploys the locally built creation code on a fork and reads back its runtime code."""

    def deploy_genesis(self, fork: ForkHandle, env: ReplayEnvironment, payload: bytes) -> bytes:
        executor = fork.executor
        executor.seed_account(PREDEPLOY_DEPLOYER, PREDEPLOY_DEPLOYER_BALANCE, 0)
        executor.apply_environment(env)

        genesis_transaction = {
            "from": PREDEPLOY_DEPLOYER,
            "to": None,
            "input": bytes_to_hex(payload),
        }
        if env.gas_limit is not None:
            genesis_transaction["gas"] = to_quantity(env.gas_limit)
        if env.base_fee is not None:
            genesis_transaction["gasPrice"] = to_quantity(env.base_fee)
            genesis_transaction["maxFeePerGas"] = to_quantity(env.base_fee)

        logger.info("Deploying local creation code at genesis")
        contract_address = executor.deploy(genesis_transaction)
        return self.read_runtime_code(executor, contract_address)

    def replay_creation(
        self, fork: ForkHandle, env: ReplayEnvironment, payload: bytes
    ) -> bytes:
        """
        Replay the creation transaction of `env` with its input swapped for the
        local creation payload. For the CREATE2 deployer, the original salt is
        kept in front of the payload.
        """
        executor = fork.executor
        transaction = dict(env.transaction)
        to = transaction.get("to")
        block_number = env.block_number

        if to is not None and not is_create2_deployer(to):
            raise VerificationInputError(
                "Transaction `to` address is not the default create2 deployer "
                "i.e the tx is not a contract creation tx."
            )

        executor.set_nonce(transaction["from"], env.sender_nonce)

        if to is None:
            transaction["input"] = bytes_to_hex(payload)
            executor.apply_environment(env)
            contract_address = executor.deploy(transaction)
            return self.read_runtime_code(executor, contract_address)

        salt = hex_to_bytes(transaction["input"])[:CREATE2_SALT_LENGTH]
        transaction["input"] = bytes_to_hex(salt + payload)
        executor.ensure_code(
            DEFAULT_CREATE2_DEPLOYER, DEFAULT_CREATE2_DEPLOYER_RUNTIME_CODE
        )
        executor.apply_environment(env)

        result = executor.call(transaction)
        if len(result) != ADDRESS_LENGTH:
            raise ReplayError(
                f"Failed to deploy contract on fork at block {block_number}: "
                f"call result is not exactly {ADDRESS_LENGTH} bytes"
            )
        executor.transact(transaction)

        return self.read_runtime_code(executor, bytes_to_hex(result))

    def read_runtime_code(self, executor, contract_address: str) -> bytes:
        code = executor.get_account_code(contract_address)
        if not code:
            raise ReplayError(
                f"Bytecode does not exist for contract deployed on fork at address {contract_address}"
            )
        logger.okay("Runtime code read back from the fork", contract_address)
        return code
