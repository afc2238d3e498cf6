import json

from .common import pull, mask_text
from .helpers import hex_to_bytes, to_int, to_quantity
from .logger import logger
from .custom_exceptions import NodeError


def rpc_request(rpc_url: str, method: str, params: list, request_id: int = 1):
    """
    Send a single JSON-RPC request and return its `result` field.

    Raises:
        NodeError: On transport failure or a JSON-RPC error response
    """
    payload = json.dumps(
        {"id": request_id, "jsonrpc": "2.0", "method": method, "params": params}
    )
    headers = {"Content-Type": "application/json"}
    response = pull(rpc_url, payload, headers).json()

    if "error" in response:
        error = response["error"]
        message = error.get("message", error) if isinstance(error, dict) else error
        raise NodeError(f"{method} {params} on {mask_text(rpc_url)} failed: {message}")
    if "result" not in response:
        raise NodeError(f"{method} {params}: received bad response: {response}")

    return response["result"]


def block_tag(block: int | str | None) -> str:
    if block is None:
        return "latest"
    if isinstance(block, int):
        return to_quantity(block)
    return block


class NodeProvider:
    """Read-only view of a chain through an archive node JSON-RPC endpoint."""

    def __init__(self, rpc_url: str):
        self.rpc_url = rpc_url

    def _request(self, method: str, params: list):
        return rpc_request(self.rpc_url, method, params)

    def get_code_at(self, address: str, block: int | str | None = None) -> bytes:
        logger.info(
            f'Receiving the bytecode of {address} at block "{block_tag(block)}" ...'
        )
        code = hex_to_bytes(self._request("eth_getCode", [address, block_tag(block)]))
        logger.okay("Bytecode was successfully received")
        return code

    def get_transaction_by_hash(self, tx_hash: str) -> dict | None:
        return self._request("eth_getTransactionByHash", [tx_hash])

    def get_transaction_receipt(self, tx_hash: str) -> dict | None:
        return self._request("eth_getTransactionReceipt", [tx_hash])

    def get_block(self, number: int, full_txs: bool = False) -> dict | None:
        return self._request("eth_getBlockByNumber", [block_tag(number), full_txs])

    def get_transaction_count(self, address: str, block: int | str | None) -> int:
        return to_int(
            self._request("eth_getTransactionCount", [address, block_tag(block)])
        )

    def get_chain_id(self) -> int:
        logger.info(f'Receiving the chain ID from "{mask_text(self.rpc_url)}" ...')
        chain_id = to_int(self._request("eth_chainId", []))
        logger.okay("Chain ID was successfully received", chain_id)
        return chain_id
