import pytest

from replayscan.utils.creation import (
    resolve_creation_context,
    get_creation_transaction,
    extract_creation_code,
)
from replayscan.utils.constants import DEFAULT_CREATE2_DEPLOYER
from replayscan.utils.custom_exceptions import NodeError, VerificationInputError

ADDRESS = "0x00000000000000000000000000000000000000Aa"
SALT = "11" * 32
CODE = "6080604052"


class FakeProvenance:
    def __init__(self, creation_data):
        self.creation_data = creation_data

    def contract_creation_data(self, contract_address):
        return self.creation_data


class FakeProvider:
    def __init__(self, transaction=None, receipt=None):
        self.transaction = transaction
        self.receipt = receipt

    def get_transaction_by_hash(self, tx_hash):
        return self.transaction

    def get_transaction_receipt(self, tx_hash):
        return self.receipt


def test_missing_creation_data_is_predeploy():
    assert resolve_creation_context(FakeProvenance(None), ADDRESS) == (None, True)


def test_creation_data_is_ordinary_deployment():
    creation_data = {"transaction_hash": "0xabc", "contract_creator": "0xdef"}
    assert resolve_creation_context(FakeProvenance(creation_data), ADDRESS) == (
        creation_data,
        False,
    )


def test_missing_transaction_raises():
    with pytest.raises(NodeError, match="Transaction not found"):
        get_creation_transaction(FakeProvider(None, {}), "0xabc")


def test_missing_receipt_raises():
    with pytest.raises(NodeError, match="Receipt not found"):
        get_creation_transaction(FakeProvider({"hash": "0xabc"}, None), "0xabc")


def test_contract_creation_tx_uses_whole_input():
    transaction = {"input": "0x" + CODE}
    receipt = {"to": None, "contractAddress": ADDRESS.lower()}
    assert extract_creation_code(transaction, receipt, ADDRESS) == bytes.fromhex(CODE)


def test_create2_deployer_tx_strips_salt():
    transaction = {"input": "0x" + SALT + CODE}
    receipt = {"to": DEFAULT_CREATE2_DEPLOYER, "contractAddress": None}
    assert extract_creation_code(transaction, receipt, ADDRESS) == bytes.fromhex(CODE)


def test_creation_by_another_contract_raises():
    transaction = {"input": "0x" + CODE}
    receipt = {"to": "0x0000000000000000000000000000000000000bad", "contractAddress": None}
    with pytest.raises(VerificationInputError, match="Could not extract"):
        extract_creation_code(transaction, receipt, ADDRESS)


def test_creation_tx_for_other_address_raises():
    transaction = {"input": "0x" + CODE}
    receipt = {"to": None, "contractAddress": "0x0000000000000000000000000000000000000bad"}
    with pytest.raises(VerificationInputError):
        extract_creation_code(transaction, receipt, ADDRESS)
