from .logger import logger
from .helpers import hex_to_bytes
from .constants import DEFAULT_CREATE2_DEPLOYER, CREATE2_SALT_LENGTH
from .custom_types import CreationData
from .custom_exceptions import NodeError, VerificationInputError


def resolve_creation_context(
    provenance, contract_address: str
) -> tuple[CreationData | None, bool]:
    """
    Find out how the contract at `contract_address` was created.

    Returns:
        (creation data, is_predeploy). A contract the explorer has no creation
        record for is treated as a predeploy (e.g. seeded at genesis).
        Explorer transport failures propagate.
    """
    creation_data = provenance.contract_creation_data(contract_address)

    if creation_data is None:
        logger.warn(
            f"No creation data found for {contract_address}, treating it as a predeploy"
        )
        return None, True

    logger.okay("Creation transaction", creation_data["transaction_hash"])
    return creation_data, False


def get_creation_transaction(provider, tx_hash: str) -> tuple[dict, dict]:
    """Fetch the creation transaction and its receipt, both must exist."""
    transaction = provider.get_transaction_by_hash(tx_hash)
    if transaction is None:
        raise NodeError(f"Transaction not found for hash {tx_hash}")

    receipt = provider.get_transaction_receipt(tx_hash)
    if receipt is None:
        raise NodeError(f"Receipt not found for transaction hash {tx_hash}")

    return transaction, receipt


def is_create2_deployer(address: str | None) -> bool:
    return address is not None and address.lower() == DEFAULT_CREATE2_DEPLOYER


def extract_creation_code(
    transaction: dict, receipt: dict, contract_address: str
) -> bytes:
    """
    The creation code as it was submitted on-chain: the whole input of a
    contract creation transaction, or the input after the salt for a call to
    the CREATE2 deployer.
    """
    tx_input = hex_to_bytes(transaction.get("input") or transaction.get("data"))
    receipt_to = receipt.get("to")
    created_address = receipt.get("contractAddress")

    if (
        receipt_to is None
        and created_address is not None
        and created_address.lower() == contract_address.lower()
    ):
        return tx_input
    if is_create2_deployer(receipt_to):
        return tx_input[CREATE2_SALT_LENGTH:]

    raise VerificationInputError(
        f"Could not extract the creation code for contract at address {contract_address}"
    )
