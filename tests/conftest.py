"""
Pytest configuration and shared fixtures.

FakeChain stands in for the BSC node: it keeps balances and allowances in
memory and applies each sent transaction's effect, so the transfer service
can be driven end to end without a network.
"""
from dataclasses import replace
from decimal import Decimal

import pytest
from django.conf import settings
from eth_account import Account

from intake.apps.deposits.indexer import TokenTransfer
from intake.apps.deposits.ledger import DepositLedger
from intake.apps.deposits.models import DepositStatus
from intake.apps.treasury.config import TreasuryConfig
from intake.apps.treasury.errors import ChainError, ChainTimeoutError, EstimationError
from intake.apps.treasury.services.chain import Receipt
from intake.apps.treasury.services.locks import ProcessLocks
from intake.apps.treasury.services.transfer import TreasuryTransferService

GWEI = 10**9
ONE_BNB = 10**18


class FakeChain:
    def __init__(self, config: TreasuryConfig, gas_price: int = 5 * GWEI):
        self.config = config
        self.gas_price = gas_price
        self.token_balances = {}
        self.native_balances = {}
        self.allowances = {}
        self.estimates = {"native_transfer": 21000, "approve": 50000, "transferFrom": 60000}
        self.estimate_errors = set()
        self.read_errors = set()
        self.revert = set()  # labels whose sends revert
        self.timeout = set()  # labels whose receipts never arrive in time
        self.approve_shortfall = 0
        self.after_transfer = None
        self.sent = []
        self._receipts = {}

    # state helpers
    def fund_token(self, address, amount):
        self.token_balances[address.lower()] = self.token_balances.get(address.lower(), 0) + amount

    def fund_native(self, address, amount):
        self.native_balances[address.lower()] = self.native_balances.get(address.lower(), 0) + amount

    @property
    def labels(self):
        return [tx["label"] for tx in self.sent]

    def _read(self, name):
        if name in self.read_errors:
            raise ChainError(f"{name} unavailable")

    # ChainClient surface
    def get_native_balance(self, address):
        self._read("get_native_balance")
        return self.native_balances.get(address.lower(), 0)

    def get_token_balance(self, address):
        self._read("get_token_balance")
        return self.token_balances.get(address.lower(), 0)

    def get_allowance(self, owner, spender):
        self._read("get_allowance")
        return self.allowances.get((owner.lower(), spender.lower()), 0)

    def get_gas_price(self):
        return self.gas_price

    def estimate_gas(self, operation):
        if operation.label in self.estimate_errors:
            raise EstimationError(f"{operation.label} would revert")
        return self.estimates[operation.label]

    def send_signed(self, operation, private_key, gas_limit, gas_price):
        assert Account.from_key(private_key).address == operation.sender
        tx_hash = "0x" + f"{len(self.sent) + 1:064x}"
        self.sent.append(
            {
                "label": operation.label,
                "sender": operation.sender,
                "to": operation.to,
                "value": operation.value,
                "call": operation.call,
                "gas_limit": gas_limit,
                "gas_price": gas_price,
                "tx_hash": tx_hash,
            }
        )
        success = operation.label not in self.revert and self._apply(operation)
        self._receipts[tx_hash] = (operation.label, success)
        return tx_hash

    def wait_for_receipt(self, tx_hash):
        label, success = self._receipts[tx_hash]
        if label in self.timeout:
            raise ChainTimeoutError(f"No receipt for {tx_hash}", tx_hash=tx_hash)
        return Receipt(success=success, tx_hash=tx_hash, block_number=len(self.sent), gas_used=21000)

    def _apply(self, operation):
        sender = operation.sender.lower()
        if operation.call is None:
            if self.native_balances.get(sender, 0) < operation.value:
                return False
            self.native_balances[sender] -= operation.value
            self.fund_native(operation.to, operation.value)
            return True

        name, args = operation.call
        if name == "approve":
            spender, amount = args
            self.allowances[(sender, spender.lower())] = amount - self.approve_shortfall
            return True
        if name == "transferFrom":
            owner, recipient, amount = (args[0].lower(), args[1].lower(), args[2])
            allowance = self.allowances.get((owner, sender), 0)
            if allowance < amount or self.token_balances.get(owner, 0) < amount:
                return False
            self.allowances[(owner, sender)] = allowance - amount
            self.token_balances[owner] -= amount
            self.fund_token(recipient, amount)
            if self.after_transfer:
                self.after_transfer(self)
            return True
        raise AssertionError(f"unexpected call {name}")


class FakeIndexer:
    def __init__(self):
        self.native = {}
        self.tokens = {}
        self.transfers = {}
        self.fail_for = set()

    def add_transfer(self, from_address, to_address, value, tx_hash="0xabc", block_number=1):
        transfer = TokenTransfer(
            tx_hash=tx_hash,
            token=settings.USDT_CONTRACT_ADDRESS.lower(),
            from_address=from_address.lower(),
            to_address=to_address.lower(),
            value=value,
            block_number=block_number,
        )
        for address in (from_address, to_address):
            self.transfers.setdefault(address.lower(), []).append(transfer)

    def _check(self, address):
        if address.lower() in self.fail_for:
            raise RuntimeError(f"indexer unavailable for {address}")

    def get_native_balance(self, address):
        self._check(address)
        return self.native.get(address.lower(), 0)

    def get_token_balance(self, address):
        self._check(address)
        return self.tokens.get(address.lower(), 0)

    def get_token_transfers(self, address):
        self._check(address)
        return list(self.transfers.get(address.lower(), []))

    def get_incoming_token_transfers(self, address):
        return [t for t in self.get_token_transfers(address) if t.to_address == address.lower()]

    def get_outgoing_token_transfers(self, address):
        return [t for t in self.get_token_transfers(address) if t.from_address == address.lower()]


class RecordingAlerts:
    def __init__(self):
        self.sent = []

    def notify(self, reason, message, *, deposit_address=""):
        self.sent.append((reason, message, deposit_address))


@pytest.fixture
def config():
    return TreasuryConfig.from_settings(settings)


@pytest.fixture
def chain(config):
    chain = FakeChain(config)
    chain.fund_native(config.gas_payer_address, ONE_BNB)
    return chain


@pytest.fixture
def indexer():
    return FakeIndexer()


@pytest.fixture
def ledger():
    return DepositLedger()


@pytest.fixture
def locks():
    return ProcessLocks(signer_wait_seconds=1)


@pytest.fixture
def alerts():
    return RecordingAlerts()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def service(config, chain, ledger, locks, alerts, sleeps):
    return TreasuryTransferService(
        config, chain, ledger, locks, alerts=alerts, sleep=sleeps.append
    )


@pytest.fixture
def make_service(chain, ledger, locks, alerts, sleeps, config):
    def _make(**overrides):
        return TreasuryTransferService(
            replace(config, **overrides), chain, ledger, locks, alerts=alerts, sleep=sleeps.append
        )

    return _make


@pytest.fixture
def pending_deposit(db, ledger):
    return ledger.open_deposit("user-1", Decimal("0"))


@pytest.fixture
def confirmed_deposit(db, ledger, pending_deposit):
    return ledger.update_status(pending_deposit.id, DepositStatus.CONFIRMED)
