"""
Tests for the web3-backed chain client, with the node mocked out.
"""
from unittest.mock import MagicMock, PropertyMock

import pytest
from eth_account import Account
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from intake.apps.treasury.errors import ChainTimeoutError, EstimationError
from intake.apps.treasury.services.chain import ChainClient, ChainOperation

from .conftest import GWEI

OTHER = "0x2222222222222222222222222222222222222222"


@pytest.fixture
def web3():
    return MagicMock()


@pytest.fixture
def client(config, web3):
    return ChainClient(config, web3=web3)


def test_gas_price_from_node(client, web3):
    type(web3.eth).gas_price = PropertyMock(return_value=3 * GWEI)
    assert client.get_gas_price() == 3 * GWEI


def test_gas_price_falls_back_when_node_fails(client, web3):
    type(web3.eth).gas_price = PropertyMock(side_effect=Web3Exception("rpc down"))
    assert client.get_gas_price() == 5 * GWEI


def test_receipt_timeout_raises_chain_timeout(client, web3):
    web3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("slow")

    with pytest.raises(ChainTimeoutError) as exc:
        client.wait_for_receipt("0xabc")
    assert exc.value.tx_hash == "0xabc"


def test_receipt_status(client, web3):
    web3.eth.wait_for_transaction_receipt.return_value = {
        "status": 0,
        "blockNumber": 7,
        "gasUsed": 40000,
    }

    receipt = client.wait_for_receipt("0xabc")

    assert not receipt.success
    assert receipt.block_number == 7


def test_revert_during_estimation(client, config):
    op = ChainOperation.token_approve(config.token_address, OTHER, config.gas_payer_address, 1)
    client.token.functions.approve.return_value.estimate_gas.side_effect = ContractLogicError(
        "execution reverted"
    )

    with pytest.raises(EstimationError):
        client.estimate_gas(op)


def test_send_rejects_foreign_signer(client, config):
    op = ChainOperation.native_transfer(OTHER, config.gas_payer_address, 1)

    with pytest.raises(ValueError):
        client.send_signed(op, config.gas_payer_private_key, 21000, GWEI)


def test_send_native_transfer(client, web3, config):
    web3.eth.get_transaction_count.return_value = 4
    web3.eth.send_raw_transaction.return_value = bytes.fromhex("12" * 32)
    op = ChainOperation.native_transfer(config.gas_payer_address, OTHER, 10)

    tx_hash = client.send_signed(op, config.gas_payer_private_key, 21000, 5 * GWEI)

    assert tx_hash == "0x" + "12" * 32
    web3.eth.get_transaction_count.assert_called_once_with(config.gas_payer_address, "pending")
    raw = web3.eth.send_raw_transaction.call_args[0][0]
    assert raw


def test_operations_checksum_addresses(config):
    op = ChainOperation.token_transfer_from(
        config.token_address.lower(), config.gas_payer_address, OTHER, config.treasury_address, 5
    )

    assert op.sender == config.gas_payer_address
    assert op.to == config.token_address
    assert op.call[0] == "transferFrom"
    assert op.call[1][2] == 5
    assert Account.from_key(config.gas_payer_private_key).address == config.gas_payer_address
