import sys
import time
import argparse
import json
import os
import traceback

from .utils.common import load_config, load_env
from .utils.constants import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_HARDHAT_CONFIG_PATH,
    START_TIME,
)
from .utils.explorer import (
    ExplorerProvenance,
    get_explorer_hostname,
    get_explorer_chain_id,
)
from .utils.logger import logger
from .utils.artifacts import ArtifactProvider
from .utils.calldata import get_user_constructor_args
from .utils.node_handler import NodeProvider
from .utils.orchestrator import VerificationOrchestrator, VerificationRequest
from .utils.custom_types import BytecodeType, ForkConfig, VerificationResult
from .utils.custom_exceptions import ExceptionHandler, BaseCustomException

__version__ = "0.1.0"


def get_explorer_token(config: dict) -> str | None:
    explorer_token = None
    if "explorer_token_env_var" in config:
        explorer_token = load_env(
            config["explorer_token_env_var"], masked=True, required=False
        )
    if explorer_token is None:
        logger.warn(
            'Failed to find an explorer token in the config ("explorer_token_env_var")'
        )
        explorer_token = os.getenv("ETHERSCAN_EXPLORER_TOKEN", default=None)
    if explorer_token is None:
        logger.warn('Failed to find explorer token in env ("ETHERSCAN_EXPLORER_TOKEN")')
    return explorer_token


def build_request(
    contract_address: str, contract_name: str, binary_config: dict
) -> VerificationRequest:
    return VerificationRequest(
        contract_address=contract_address,
        contract_name=contract_name,
        user_args=get_user_constructor_args(contract_address, binary_config),
        block=binary_config.get("block", {}).get(contract_address),
        ignore=BytecodeType.parse(binary_config.get("ignore")),
    )


def add_report_rows(
    report: list,
    contract_address: str,
    contract_name: str,
    results: list[VerificationResult],
) -> None:
    for result in results:
        report.append(
            [
                len(report) + 1,
                contract_address,
                contract_name,
                result.bytecode_type.value,
                result.match_type.value,
                result.message or "",
            ]
        )


def process_config(path: str, hardhat_path: str | None, use_cache: bool) -> dict:
    logger.info(f"Loading config {path}...")
    config = load_config(path)
    binary_config = config.get("bytecode_comparison") or {}

    remote_rpc_url = load_env("REMOTE_RPC_URL", masked=True, required=True)
    local_rpc_url = load_env("LOCAL_RPC_URL", masked=False, required=True)
    explorer_token = get_explorer_token(config)

    ExceptionHandler.initialize(config.get("fail_on_bytecode_comparison_error", True))

    provider = NodeProvider(remote_rpc_url)
    fork_config = ForkConfig(
        remote_rpc_url=remote_rpc_url,
        local_rpc_url=local_rpc_url,
        hardhat_config_path=hardhat_path
        or binary_config.get("hardhat_config_name", DEFAULT_HARDHAT_CONFIG_PATH),
        chain_id=provider.get_chain_id(),
    )
    logger.okay("Chain ID", fork_config.chain_id)

    explorer_hostname = get_explorer_hostname(config)
    explorer_chain_id = get_explorer_chain_id(config)
    logger.okay("Blockchain explorer Hostname", explorer_hostname)
    if explorer_chain_id:
        logger.okay("Blockchain explorer Chain ID", explorer_chain_id)
    else:
        logger.warn("Blockchain explorer Chain ID isn't set")

    orchestrator = VerificationOrchestrator(
        provider,
        ExplorerProvenance(
            explorer_token, explorer_hostname, explorer_chain_id, use_cache
        ),
        ArtifactProvider(binary_config),
        fork_config,
    )

    report = []
    verification_results = {}
    try:
        for contract_address, contract_name in config["contracts"].items():
            logger.divider()
            logger.info(
                f"Bytecode verification started for {contract_address} : {contract_name}"
            )
            try:
                results = orchestrator.run(
                    build_request(contract_address, contract_name, binary_config)
                )
            except BaseCustomException as custom_exc:
                ExceptionHandler.raise_exception_or_log(custom_exc, contract_address)
                traceback.print_exc()
                continue

            verification_results[contract_address] = [
                result.to_json() for result in results
            ]
            add_report_rows(report, contract_address, contract_name, results)
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt by user")

    logger.divider()
    logger.report_table(report)
    return verification_results


def parse_arguments():
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--version", "-V", action="store_true", help="Display version information"
    )
    parser.add_argument(
        "path", nargs="?", default=None, help="Path to config or directory with configs"
    )
    parser.add_argument(
        "--hardhat-path",
        default=None,
        help=f"Path to Hardhat config (default: {DEFAULT_HARDHAT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--json",
        help="Print verification results as JSON instead of the log output",
        action="store_true",
    )
    parser.add_argument(
        "--cache",
        help="Cache contract sources fetched from the blockchain explorer",
        action="store_true",
    )
    return parser.parse_args()


def main():
    args = parse_arguments()
    if args.version:
        print(f"Replayscan {__version__}")
        return
    logger.set_quiet(args.json)
    logger.info("Welcome to Replayscan!")
    logger.divider()

    results = {}
    if args.path is None:
        results.update(process_config(DEFAULT_CONFIG_PATH, args.hardhat_path, args.cache))
    elif os.path.isfile(args.path):
        results.update(process_config(args.path, args.hardhat_path, args.cache))
    elif os.path.isdir(args.path):
        for filename in sorted(os.listdir(args.path)):
            config_path = os.path.join(args.path, filename)
            if os.path.isfile(config_path):
                results.update(
                    process_config(config_path, args.hardhat_path, args.cache)
                )
    else:
        logger.error(f"Specified config path {args.path} not found")
        sys.exit(1)

    if args.json:
        print(json.dumps(results, indent=2))

    execution_time = time.time() - START_TIME

    logger.okay(f"Done in {round(execution_time, 3)}s ✨")


if __name__ == "__main__":
    main()
