import pytest

from replayscan.utils.replay import (
    ReplayEnvironmentBuilder,
    DeploymentReplayer,
    get_hardfork,
)
from replayscan.utils.constants import (
    DEFAULT_CREATE2_DEPLOYER,
    PREDEPLOY_DEPLOYER,
    PREDEPLOY_DEPLOYER_BALANCE,
)
from replayscan.utils.custom_types import ReplayEnvironment
from replayscan.utils.custom_exceptions import ReplayError, VerificationInputError

from fakes import FORK_CONFIG, FakeExecutor, FakeFork, FakeLauncher, FakeProvider

SENDER = "0x00000000000000000000000000000000000000f1"
SALT = bytes.fromhex("ab" * 32)
PAYLOAD = bytes.fromhex("6080604052")
RUNTIME = bytes.fromhex("60806040")
DEPLOYED = "0x00000000000000000000000000000000000000d1"

BLOCK = {
    "timestamp": "0x64",
    "miner": "0x00000000000000000000000000000000000000c0",
    "difficulty": "0x0",
    "mixHash": "0x" + "22" * 32,
    "baseFeePerGas": "0x7",
    "gasLimit": "0x1c9c380",
}


def replay_env(to=None, tx_input="0x"):
    env = ReplayEnvironment(
        block_number=100,
        fork_block_number=99,
        evm_version="cancun",
        hardfork="cancun",
        sender=SENDER,
        sender_nonce=5,
    )
    env.transaction = {"from": SENDER, "to": to, "input": tx_input, "nonce": "0x5"}
    return env


def test_get_hardfork():
    assert get_hardfork("paris") == "merge"
    assert get_hardfork("Shanghai") == "shanghai"
    assert get_hardfork("no-such-version") == "cancun"


def test_build_pins_fork_before_target_block():
    provider = FakeProvider(blocks={100: BLOCK}, nonces={(SENDER, 99): 5})
    launcher = FakeLauncher(FakeExecutor())
    builder = ReplayEnvironmentBuilder(provider, launch_fork=launcher)

    env, fork = builder.build(FORK_CONFIG, 100, "paris", {"from": SENDER, "to": None})

    assert launcher.launches == [(99, "merge")]
    assert fork.fork_block_number == 99
    assert env.block_number == 100
    assert env.sender_nonce == 5
    assert env.transaction["nonce"] == "0x5"
    assert env.timestamp == 100
    assert env.base_fee == 7
    assert env.gas_limit == 30_000_000


def test_build_reads_nonce_after_fork_block_is_chosen():
    provider = FakeProvider(blocks={100: BLOCK})
    builder = ReplayEnvironmentBuilder(provider, launch_fork=FakeLauncher(FakeExecutor()))

    builder.build(FORK_CONFIG, 100, None, {"from": SENDER, "to": None})

    calls = [call[0] for call in provider.calls]
    assert calls == ["get_block", "get_transaction_count"]
    assert provider.calls[1] == ("get_transaction_count", SENDER, 99)


def test_build_genesis_environment():
    provider = FakeProvider(blocks={0: BLOCK})
    launcher = FakeLauncher(FakeExecutor())
    builder = ReplayEnvironmentBuilder(provider, launch_fork=launcher)

    env, _ = builder.build(FORK_CONFIG, 0, None)

    assert launcher.launches == [(0, "cancun")]
    assert env.evm_version == "cancun"
    assert env.sender_nonce is None
    assert all(call[0] != "get_transaction_count" for call in provider.calls)


def test_replay_plain_creation():
    executor = FakeExecutor(code={DEPLOYED: RUNTIME}, deployed_address=DEPLOYED)

    code = DeploymentReplayer().replay_creation(FakeFork(executor), replay_env(), PAYLOAD)

    assert code == RUNTIME
    assert executor.calls[0] == ("set_nonce", SENDER, 5)
    deploy = next(call for call in executor.calls if call[0] == "deploy")
    assert deploy[1]["input"] == "0x" + PAYLOAD.hex()
    assert deploy[1]["nonce"] == "0x5"


def test_replay_create2_keeps_original_salt():
    executor = FakeExecutor(
        code={DEPLOYED: RUNTIME}, call_result=bytes.fromhex(DEPLOYED[2:])
    )
    env = replay_env(DEFAULT_CREATE2_DEPLOYER, "0x" + (SALT + b"\xff\xff").hex())

    code = DeploymentReplayer().replay_creation(FakeFork(executor), env, PAYLOAD)

    assert code == RUNTIME
    names = [call[0] for call in executor.calls]
    assert names == ["set_nonce", "ensure_code", "apply_environment", "call", "transact"]
    sent = executor.calls[-1][1]
    assert sent["input"] == "0x" + (SALT + PAYLOAD).hex()
    assert sent["to"] == DEFAULT_CREATE2_DEPLOYER


def test_replay_create2_wrong_result_width_raises():
    executor = FakeExecutor(call_result=b"\x01" * 19)
    env = replay_env(DEFAULT_CREATE2_DEPLOYER, "0x" + SALT.hex())

    with pytest.raises(ReplayError, match="not exactly 20 bytes"):
        DeploymentReplayer().replay_creation(FakeFork(executor), env, PAYLOAD)
    assert all(call[0] != "transact" for call in executor.calls)


def test_replay_call_to_other_contract_raises():
    env = replay_env("0x0000000000000000000000000000000000000bad")

    with pytest.raises(VerificationInputError, match="not the default create2 deployer"):
        DeploymentReplayer().replay_creation(FakeFork(FakeExecutor()), env, PAYLOAD)


def test_replay_without_deployed_code_raises():
    executor = FakeExecutor(deployed_address=DEPLOYED)

    with pytest.raises(ReplayError, match="Bytecode does not exist"):
        DeploymentReplayer().replay_creation(FakeFork(executor), replay_env(), PAYLOAD)


def test_deploy_genesis_seeds_deployer():
    executor = FakeExecutor(code={DEPLOYED: RUNTIME}, deployed_address=DEPLOYED)
    env = ReplayEnvironment(
        block_number=0,
        fork_block_number=0,
        evm_version="cancun",
        hardfork="cancun",
        gas_limit=30_000_000,
        base_fee=7,
    )

    code = DeploymentReplayer().deploy_genesis(FakeFork(executor), env, PAYLOAD)

    assert code == RUNTIME
    assert executor.calls[0] == (
        "seed_account",
        PREDEPLOY_DEPLOYER,
        PREDEPLOY_DEPLOYER_BALANCE,
        0,
    )
    deploy = executor.calls[-1][1]
    assert deploy["from"] == PREDEPLOY_DEPLOYER
    assert deploy["input"] == "0x" + PAYLOAD.hex()
    assert deploy["gas"] == hex(30_000_000)
