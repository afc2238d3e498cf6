import os
import signal
import socket
import subprocess
import time

from urllib.parse import urlparse

from .common import mask_text
from .constants import DIGEST_DIR, START_TIME_INT
from .helpers import create_dirs
from .logger import logger
from .custom_types import ForkConfig
from .custom_exceptions import HardhatError
from .fork_executor import ForkExecutor

HARDHAT_LOG_PATH = f"{DIGEST_DIR}/{START_TIME_INT}/hardhat.log"


class HardhatNode:
    """`npx hardhat node` forked from the remote chain at a fixed block."""

    START_TIMEOUT_SEC = 60
    STOP_TIMEOUT_SEC = 10
    POLL_INTERVAL_SEC = 0.5

    def __init__(
        self,
        fork_config: ForkConfig,
        fork_block_number: int,
        hardfork: str,
    ):
        parsed_url = urlparse(fork_config.local_rpc_url)
        if not parsed_url.port or not parsed_url.hostname:
            raise HardhatError(f"Invalid LOCAL_RPC_URL: '{fork_config.local_rpc_url}'")
        self.host = parsed_url.hostname
        self.port = parsed_url.port
        self.fork_config = fork_config
        self.fork_block_number = fork_block_number
        self.hardfork = hardfork
        self.sub_process = None

    def command(self, remote_rpc_url: str) -> list[str]:
        return [
            "npx",
            "hardhat",
            "node",
            "--hostname",
            self.host,
            "--port",
            str(self.port),
            "--config",
            self.fork_config.hardhat_config_path,
            "--fork-block-number",
            str(self.fork_block_number),
            "--fork",
            remote_rpc_url,
        ]

    def environment(self) -> dict[str, str]:
        # hardhat_config.js reads these
        env = dict(os.environ)
        env["HARDHAT_HARDFORK"] = self.hardfork
        if self.fork_config.chain_id is not None:
            env["HARDHAT_CHAIN_ID"] = str(self.fork_config.chain_id)
        return env

    def start(self) -> None:
        config_path = self.fork_config.hardhat_config_path
        if not os.path.isfile(config_path):
            raise HardhatError(f"Failed to find Hardhat config by path '{config_path}'")
        if self.is_listening():
            raise HardhatError(f"{self.host}:{self.port} is busy")

        masked_cmd = " ".join(self.command(mask_text(self.fork_config.remote_rpc_url)))
        logger.info(f'Starting Hardhat ({self.hardfork}): "{masked_cmd}"')

        create_dirs(HARDHAT_LOG_PATH)
        with open(HARDHAT_LOG_PATH, mode="a") as node_log:
            self.sub_process = subprocess.Popen(
                self.command(self.fork_config.remote_rpc_url),
                stdout=node_log,
                stderr=subprocess.STDOUT,
                env=self.environment(),
                start_new_session=True,
            )

        deadline = time.monotonic() + self.START_TIMEOUT_SEC
        while time.monotonic() < deadline:
            if self.sub_process.poll() is not None:
                raise HardhatError(
                    f"Hardhat node exited with code {self.sub_process.returncode}, "
                    f"see {HARDHAT_LOG_PATH}"
                )
            if self.is_listening():
                logger.info(
                    f"Hardhat node is ready at block {self.fork_block_number}",
                    self.sub_process.pid,
                )
                return
            time.sleep(self.POLL_INTERVAL_SEC)

        self.stop()
        raise HardhatError(
            f"Hardhat node didn't start listening in {self.START_TIMEOUT_SEC}s"
        )

    def stop(self) -> None:
        process, self.sub_process = self.sub_process, None
        if process is None or process.poll() is not None:
            return

        for sig in (signal.SIGTERM, signal.SIGKILL):
            try:
                os.killpg(os.getpgid(process.pid), sig)
            except ProcessLookupError:
                return
            try:
                process.wait(timeout=self.STOP_TIMEOUT_SEC)
                logger.info(f"Hardhat stopped ({sig.name})", process.pid)
                return
            except subprocess.TimeoutExpired:
                logger.warn(
                    f"Hardhat ignored {sig.name} for {self.STOP_TIMEOUT_SEC}s", process.pid
                )
        logger.error("Failed to stop Hardhat", process.pid)

    def is_listening(self) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            return s.connect_ex((self.host, self.port)) == 0


class ForkHandle:
    """A running fork node pinned at one block, plus the executor talking to it."""

    def __init__(self, node: HardhatNode, executor: ForkExecutor, fork_block_number: int):
        self.node = node
        self.executor = executor
        self.fork_block_number = fork_block_number

    def close(self) -> None:
        self.node.stop()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


def launch_hardhat_fork(
    fork_config: ForkConfig, fork_block_number: int, hardfork: str
) -> ForkHandle:
    node = HardhatNode(fork_config, fork_block_number, hardfork)
    node.start()
    return ForkHandle(node, ForkExecutor(fork_config.local_rpc_url), fork_block_number)
