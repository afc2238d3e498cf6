from .node_handler import rpc_request, block_tag
from .helpers import hex_to_bytes, to_int, to_quantity
from .logger import logger
from .constants import POST_MERGE_HARDFORKS, POST_LONDON_HARDFORKS
from .custom_types import ReplayEnvironment
from .custom_exceptions import NodeError, ReplayError

# Transaction fields forwarded verbatim to eth_sendTransaction / eth_call
FORWARDED_TX_FIELDS = (
    "from",
    "to",
    "gas",
    "value",
    "nonce",
    "gasPrice",
    "maxFeePerGas",
    "maxPriorityFeePerGas",
    "accessList",
)


def build_call_params(transaction: dict) -> dict:
    params = {
        key: transaction[key]
        for key in FORWARDED_TX_FIELDS
        if transaction.get(key) is not None
    }
    if "maxFeePerGas" in params:
        params.pop("gasPrice", None)
    params["data"] = transaction["input"]
    return params


class ForkExecutor:
    """
    Executes transactions on a local Hardhat node forked from the remote chain.
    State changes are mined immediately (automine), so deployments can be
    read back with `get_account_code` right after `deploy`/`transact`.
    """

    def __init__(self, rpc_url: str):
        self.rpc_url = rpc_url

    def _request(self, method: str, params: list):
        return rpc_request(self.rpc_url, method, params)

    def apply_environment(self, env: ReplayEnvironment) -> None:
        """Make the next mined block observe the historical block context."""
        if env.timestamp is not None:
            self._request("evm_setNextBlockTimestamp", [env.timestamp])
        if env.coinbase is not None:
            self._request("hardhat_setCoinbase", [env.coinbase])
        if env.gas_limit is not None:
            self._request("evm_setBlockGasLimit", [to_quantity(env.gas_limit)])
        if env.base_fee is not None and env.hardfork in POST_LONDON_HARDFORKS:
            self._request(
                "hardhat_setNextBlockBaseFeePerGas", [to_quantity(env.base_fee)]
            )
        if env.prevrandao is not None and env.hardfork in POST_MERGE_HARDFORKS:
            self._request("hardhat_setPrevRandao", [env.prevrandao])
        elif env.difficulty is not None:
            logger.warn(
                f"Block difficulty {env.difficulty} can't be pinned on the fork node"
            )

    def seed_account(self, address: str, balance: int, nonce: int | None = None):
        self._request("hardhat_setBalance", [address, to_quantity(balance)])
        if nonce is not None:
            self.set_nonce(address, nonce)

    def set_nonce(self, address: str, nonce: int) -> None:
        self._request("hardhat_setNonce", [address, to_quantity(nonce)])

    def impersonate(self, address: str) -> None:
        self._request("hardhat_impersonateAccount", [address])

    def ensure_code(self, address: str, code: str) -> None:
        """Install `code` at `address` unless the fork already has some there."""
        if self.get_account_code(address):
            logger.info(f"Code at {address} already exists on the fork")
            return
        logger.info(f"Installing code at {address} on the fork")
        self._request("hardhat_setCode", [address, code])

    def call(self, transaction: dict) -> bytes:
        return hex_to_bytes(
            self._request("eth_call", [build_call_params(transaction), "pending"])
        )

    def transact(self, transaction: dict) -> dict:
        """Send and mine `transaction`, returning its receipt."""
        self.impersonate(transaction["from"])
        tx_hash = self._request(
            "eth_sendTransaction", [build_call_params(transaction)]
        )
        receipt = self._request("eth_getTransactionReceipt", [tx_hash])
        if receipt is None:
            raise NodeError(f"Receipt not found for fork transaction {tx_hash}")
        if to_int(receipt.get("status")) != 1:
            raise ReplayError(
                f"Transaction {tx_hash} has been reverted on the fork (status 0x0)"
            )
        return receipt

    def deploy(self, transaction: dict) -> str:
        """Send a contract creation transaction and return the new address."""
        receipt = self.transact({**transaction, "to": None})
        contract_address = receipt.get("contractAddress")
        if not contract_address:
            raise ReplayError(
                f"Deployment {receipt.get('transactionHash')} produced no contract address"
            )
        return contract_address

    def get_account_code(self, address: str, block: int | str | None = None) -> bytes:
        return hex_to_bytes(self._request("eth_getCode", [address, block_tag(block)]))
