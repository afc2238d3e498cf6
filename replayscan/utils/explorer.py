import json
import os

from .common import fetch
from .logger import logger
from .helpers import hex_to_bytes
from .custom_types import CreationData, SourceMetadata
from .custom_exceptions import ExplorerError, VerificationInputError

# Explorer sources kept between runs with --cache, one JSON file per chain and address
CACHE_DIR = os.path.join(os.getcwd(), ".replayscan_cache")

# Only what the artifact provider reads from the compiler output
OUTPUT_SELECTION = {
    "*": {"*": ["abi", "evm.bytecode", "evm.deployedBytecode"]},
}

BLOCKSCOUT_DOMAINS = (
    "mode.network",
    "blockscout.com",
    "swellnetwork.io",
    "lisk.com",
    "inkonchain.com",
)


def _raise_unverified(address: str) -> None:
    raise ExplorerError(f"Source code is not verified or an EOA address: {address}")


def parse_evm_version(evm_version: str | None) -> str | None:
    """Explorers report "Default" (or nothing) when solc picked the EVM version."""
    if not evm_version or evm_version.lower() == "default":
        return None
    return evm_version.lower()


def _cache_path(contract_address: str, chain_id: int | None) -> str:
    chain = "unknown" if chain_id is None else str(chain_id)
    return os.path.join(CACHE_DIR, f"{chain}_{contract_address.lower()}.json")


def _load_from_cache(contract_address: str, chain_id: int | None) -> SourceMetadata | None:
    cache_path = _cache_path(contract_address, chain_id)
    if not os.path.exists(cache_path):
        return None
    try:
        with open(cache_path, "r") as cache_file:
            cached = json.load(cache_file)
        cached["constructor_arguments"] = hex_to_bytes(cached["constructor_arguments"])
    except (OSError, ValueError, KeyError) as e:
        logger.warn(f"Ignoring unreadable cache entry {cache_path}", e)
        return None
    logger.info("Loaded explorer sources from cache", cache_path)
    return cached


def _save_to_cache(
    contract_address: str, chain_id: int | None, contract_data: SourceMetadata
) -> None:
    cache_path = _cache_path(contract_address, chain_id)
    # bytes aren't JSON serializable
    entry = dict(contract_data, constructor_arguments=contract_data["constructor_arguments"].hex())
    try:
        os.makedirs(CACHE_DIR, exist_ok=True)
        with open(cache_path, "w") as cache_file:
            json.dump(entry, cache_file, indent=2)
    except OSError as e:
        logger.warn(f"Failed to write cache entry {cache_path}", e)
        return
    logger.info("Saved explorer sources to cache", cache_path)


def _etherscan_link(
    etherscan_hostname: str, query: str, token: str | None, chain_id: int | None
) -> str:
    if chain_id is None:
        link = f"https://{etherscan_hostname}/api?{query}"
    else:
        link = f"https://{etherscan_hostname}/v2/api?chainid={chain_id}&{query}"
    if token is not None:
        link = f"{link}&apikey={token}"
    return link


def _build_solc_input(
    sources: dict, optimizer: dict, evm_version: str | None
) -> dict:
    settings = {"optimizer": optimizer, "outputSelection": OUTPUT_SELECTION}
    if evm_version is not None:
        settings["evmVersion"] = evm_version
    return {"language": "Solidity", "sources": sources, "settings": settings}


def _get_contract_from_etherscan(
    token: str | None,
    etherscan_hostname: str,
    contract: str,
    chain_id: int | None = None,
) -> SourceMetadata:
    etherscan_link = _etherscan_link(
        etherscan_hostname,
        f"module=contract&action=getsourcecode&address={contract}",
        token,
        chain_id,
    )
    response = fetch(etherscan_link).json()

    if response["message"] == "NOTOK":
        raise ExplorerError(f'Received bad response: {response["result"]}')

    result = response["result"][0]
    if "ContractName" not in result or not result["ContractName"]:
        _raise_unverified(contract)

    evm_version = parse_evm_version(result.get("EVMVersion"))
    optimizer = {
        "enabled": result["OptimizationUsed"] == "1",
        "runs": int(result["Runs"]),
    }
    solc_input = result["SourceCode"]
    if solc_input.startswith("{{"):
        solc_input = json.loads(solc_input[1:-1])
        evm_version = evm_version or parse_evm_version(
            solc_input.get("settings", {}).get("evmVersion")
        )
    elif solc_input.startswith("{"):
        solc_input = _build_solc_input(json.loads(solc_input), optimizer, evm_version)
    else:
        solc_input = _build_solc_input(
            {result["ContractName"]: {"content": solc_input}}, optimizer, evm_version
        )

    return {
        "name": result["ContractName"],
        "compiler": result["CompilerVersion"],
        "solcInput": solc_input,
        "constructor_arguments": hex_to_bytes(result.get("ConstructorArguments")),
        "evm_version": evm_version,
        "optimizer": optimizer,
    }


def _get_contract_from_blockscout(explorer_hostname: str, contract: str) -> SourceMetadata:
    explorer_link = f"https://{explorer_hostname}/api/v2/smart-contracts/{contract}"
    response = fetch(explorer_link).json()

    if "name" not in response:
        _raise_unverified(contract)

    source_files = {response["file_path"]: {"content": response["source_code"]}}

    for entry in response.get("additional_sources", []):
        source_files[entry["file_path"]] = {"content": entry["source_code"]}

    evm_version = parse_evm_version(response.get("evm_version"))
    optimizer = {
        "enabled": bool(response["optimization_enabled"]),
        "runs": int(response.get("optimization_runs") or 200),
    }
    return {
        "name": response["name"],
        "compiler": response["compiler_version"],
        "solcInput": _build_solc_input(source_files, optimizer, evm_version),
        "constructor_arguments": hex_to_bytes(response.get("constructor_args")),
        "evm_version": evm_version,
        "optimizer": optimizer,
    }


def _get_creation_data_from_etherscan(
    token: str | None,
    etherscan_hostname: str,
    contract: str,
    chain_id: int | None = None,
) -> CreationData | None:
    etherscan_link = _etherscan_link(
        etherscan_hostname,
        f"module=contract&action=getcontractcreation&contractaddresses={contract}",
        token,
        chain_id,
    )
    response = fetch(etherscan_link).json()

    if response.get("status") != "1":
        if "no data found" in str(response.get("message", "")).lower():
            return None
        raise ExplorerError(
            f"Failed to get creation data for {contract}: {response.get('result')}"
        )

    results = response.get("result") or []
    if not results:
        return None
    # genesis-seeded contracts have a pseudo hash like "GENESIS_<address>"
    if str(results[0].get("txHash", "")).upper().startswith("GENESIS"):
        return None

    return {
        "transaction_hash": results[0]["txHash"],
        "contract_creator": results[0]["contractCreator"],
    }


def _get_creation_data_from_blockscout(
    explorer_hostname: str, contract: str
) -> CreationData | None:
    explorer_link = f"https://{explorer_hostname}/api/v2/addresses/{contract}"
    response = fetch(explorer_link).json()

    if not response.get("creation_tx_hash"):
        return None

    return {
        "transaction_hash": response["creation_tx_hash"],
        "contract_creator": response.get("creator_address_hash"),
    }


def _is_blockscout(explorer_hostname: str) -> bool:
    return any(explorer_hostname.endswith(domain) for domain in BLOCKSCOUT_DOMAINS)


def _validate_contract_name(
    contract_address: str,
    expected_name: str,
    actual_name: str,
    source: str = "explorer",
) -> None:
    """Validate that the contract name from the source matches the expected name."""
    if actual_name != expected_name:
        raise VerificationInputError(
            f"Contract name in config does not match with {source} {contract_address}: "
            f"{expected_name} != {actual_name}"
        )


def get_contract_from_explorer(
    token: str | None,
    explorer_hostname: str,
    contract_address: str,
    chain_id: int | None = None,
    use_cache: bool = False,
) -> SourceMetadata:
    if use_cache:
        cached_result = _load_from_cache(contract_address, chain_id)
        if cached_result is not None:
            return cached_result
        logger.warn(f"No cached explorer contract found for {contract_address}")

    logger.info(
        f"Fetching source code of {contract_address} from blockchain explorer {explorer_hostname} ..."
    )
    if _is_blockscout(explorer_hostname):
        result = _get_contract_from_blockscout(explorer_hostname, contract_address)
    else:
        result = _get_contract_from_etherscan(
            token, explorer_hostname, contract_address, chain_id
        )

    if use_cache:
        _save_to_cache(contract_address, chain_id, result)

    return result


def get_contract_creation_data(
    token: str | None,
    explorer_hostname: str,
    contract_address: str,
    chain_id: int | None = None,
) -> CreationData | None:
    logger.info(f"Fetching creation data of {contract_address} ...")
    if _is_blockscout(explorer_hostname):
        return _get_creation_data_from_blockscout(explorer_hostname, contract_address)
    return _get_creation_data_from_etherscan(
        token, explorer_hostname, contract_address, chain_id
    )


class ExplorerProvenance:
    """Source and creation metadata for contracts verified on a block explorer."""

    def __init__(
        self,
        token: str | None,
        explorer_hostname: str,
        chain_id: int | None = None,
        use_cache: bool = False,
    ):
        self.token = token
        self.explorer_hostname = explorer_hostname
        self.chain_id = chain_id
        self.use_cache = use_cache

    def contract_creation_data(self, contract_address: str) -> CreationData | None:
        return get_contract_creation_data(
            self.token, self.explorer_hostname, contract_address, self.chain_id
        )

    def contract_source_code(
        self, contract_address: str, expected_name: str | None = None
    ) -> SourceMetadata:
        result = get_contract_from_explorer(
            self.token,
            self.explorer_hostname,
            contract_address,
            self.chain_id,
            self.use_cache,
        )
        if expected_name is not None:
            _validate_contract_name(
                contract_address, expected_name, result["name"], "blockchain explorer"
            )
        return result


def get_config_value(config: dict, key: str, warn_if_missing: bool = True):
    value = config.get(key)
    if value is None and warn_if_missing:
        logger.warn(f'Failed to find "{key}" in the config')
    return value


def get_explorer_hostname(config: dict) -> str | None:
    """Get explorer hostname from config, directly or via an env variable."""
    if "explorer_hostname_env_var" in config:
        return os.getenv(config["explorer_hostname_env_var"])
    return get_config_value(config, "explorer_hostname", warn_if_missing=True)


def get_explorer_chain_id(config: dict) -> int | None:
    """Get explorer chain ID from config."""
    return get_config_value(config, "explorer_chain_id", warn_if_missing=False)
