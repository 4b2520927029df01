"""
BSC chain client.

A narrow capability set over web3: balance and allowance reads, gas estimation,
fee data with a fixed fallback, signed submission and bounded receipt waits.
All amounts are integers in the smallest unit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware

from ..config import TreasuryConfig
from ..errors import ChainError, ChainTimeoutError, EstimationError

logger = logging.getLogger(__name__)

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "sender", "type": "address"},
            {"name": "recipient", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "transferFrom",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


@dataclass(frozen=True)
class ChainOperation:
    """One transaction to estimate or send.

    `call` is (function name, args) on the token contract; None means a plain
    native-coin transfer of `value` to `to`.
    """

    label: str
    sender: str
    to: str
    value: int = 0
    call: Optional[Tuple[str, Tuple[Any, ...]]] = None

    @classmethod
    def native_transfer(cls, sender: str, to: str, value: int) -> "ChainOperation":
        return cls(
            label="native_transfer",
            sender=Web3.to_checksum_address(sender),
            to=Web3.to_checksum_address(to),
            value=value,
        )

    @classmethod
    def token_approve(
        cls, token: str, owner: str, spender: str, amount: int
    ) -> "ChainOperation":
        return cls(
            label="approve",
            sender=Web3.to_checksum_address(owner),
            to=Web3.to_checksum_address(token),
            call=("approve", (Web3.to_checksum_address(spender), amount)),
        )

    @classmethod
    def token_transfer_from(
        cls, token: str, spender: str, owner: str, recipient: str, amount: int
    ) -> "ChainOperation":
        return cls(
            label="transferFrom",
            sender=Web3.to_checksum_address(spender),
            to=Web3.to_checksum_address(token),
            call=(
                "transferFrom",
                (
                    Web3.to_checksum_address(owner),
                    Web3.to_checksum_address(recipient),
                    amount,
                ),
            ),
        )


@dataclass(frozen=True)
class Receipt:
    success: bool
    tx_hash: str
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


class ChainClient:
    """web3-backed client for the deposit token on BSC."""

    def __init__(self, config: TreasuryConfig, web3: Optional[Web3] = None):
        self.config = config
        if web3 is None:
            web3 = Web3(Web3.HTTPProvider(config.rpc_url, request_kwargs={"timeout": 30}))
            # BSC is proof-of-authority; block extraData exceeds the mainnet limit
            web3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        self.web3 = web3
        self.token = self.web3.eth.contract(
            address=Web3.to_checksum_address(config.token_address), abi=ERC20_ABI
        )

    # ============================================================
    # READS
    # ============================================================

    def get_native_balance(self, address: str) -> int:
        try:
            return int(self.web3.eth.get_balance(Web3.to_checksum_address(address)))
        except (Web3Exception, OSError, ValueError) as e:
            raise ChainError(f"Native balance read failed for {address}: {e}") from e

    def get_token_balance(self, address: str) -> int:
        try:
            return int(
                self.token.functions.balanceOf(Web3.to_checksum_address(address)).call()
            )
        except (Web3Exception, OSError, ValueError) as e:
            raise ChainError(f"Token balance read failed for {address}: {e}") from e

    def get_allowance(self, owner: str, spender: str) -> int:
        try:
            return int(
                self.token.functions.allowance(
                    Web3.to_checksum_address(owner), Web3.to_checksum_address(spender)
                ).call()
            )
        except (Web3Exception, OSError, ValueError) as e:
            raise ChainError(f"Allowance read failed for {owner}: {e}") from e

    def get_gas_price(self) -> int:
        """Current gas price, or the configured fallback if the node fails."""
        try:
            return int(self.web3.eth.gas_price)
        except (Web3Exception, OSError, ValueError) as e:
            logger.warning(
                f"[Chain] Gas price lookup failed ({e}); using fallback "
                f"{self.config.fallback_gas_price_wei} wei"
            )
            return self.config.fallback_gas_price_wei

    # ============================================================
    # WRITES
    # ============================================================

    def estimate_gas(self, operation: ChainOperation) -> int:
        try:
            if operation.call is None:
                return int(
                    self.web3.eth.estimate_gas(
                        {
                            "from": operation.sender,
                            "to": operation.to,
                            "value": operation.value,
                        }
                    )
                )
            return int(
                self._contract_function(operation).estimate_gas(
                    {"from": operation.sender, "value": operation.value}
                )
            )
        except ContractLogicError as e:
            raise EstimationError(
                f"{operation.label} would revert for {operation.sender}: {e}"
            ) from e
        except (Web3Exception, OSError, ValueError) as e:
            raise EstimationError(
                f"Gas estimation for {operation.label} failed: {e}"
            ) from e

    def send_signed(
        self,
        operation: ChainOperation,
        private_key: str,
        gas_limit: int,
        gas_price: int,
    ) -> str:
        """Sign with `private_key` and broadcast. Returns the tx hash."""
        account = Account.from_key(private_key)
        if account.address != operation.sender:
            raise ValueError(
                f"Signer {account.address} does not control {operation.sender}"
            )

        try:
            nonce = self.web3.eth.get_transaction_count(operation.sender, "pending")
            params = {
                "from": operation.sender,
                "nonce": nonce,
                "gas": int(gas_limit),
                "gasPrice": int(gas_price),
                "value": operation.value,
                "chainId": self.config.chain_id,
            }
            if operation.call is None:
                params["to"] = operation.to
                transaction = params
            else:
                transaction = self._contract_function(operation).build_transaction(params)

            signed = account.sign_transaction(transaction)
            tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        except (Web3Exception, OSError, ValueError) as e:
            raise ChainError(f"Submitting {operation.label} failed: {e}") from e

        tx_hex = Web3.to_hex(tx_hash)
        logger.info(
            f"[Chain] {operation.label} sent from {operation.sender} "
            f"(nonce {nonce}, gas {gas_limit}): {tx_hex}"
        )
        return tx_hex

    def wait_for_receipt(self, tx_hash: str) -> Receipt:
        try:
            receipt = self.web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.config.receipt_timeout_seconds
            )
        except TimeExhausted as e:
            raise ChainTimeoutError(
                f"No receipt for {tx_hash} within "
                f"{self.config.receipt_timeout_seconds}s",
                tx_hash=tx_hash,
            ) from e
        except (Web3Exception, OSError, ValueError) as e:
            raise ChainError(f"Receipt lookup for {tx_hash} failed: {e}", tx_hash=tx_hash) from e

        success = receipt["status"] == 1
        logger.info(
            f"[Chain] Receipt {tx_hash}: status={receipt['status']} "
            f"block={receipt['blockNumber']}"
        )
        return Receipt(
            success=success,
            tx_hash=tx_hash,
            block_number=receipt["blockNumber"],
            gas_used=receipt.get("gasUsed"),
            raw=dict(receipt),
        )

    def _contract_function(self, operation: ChainOperation):
        name, args = operation.call
        return getattr(self.token.functions, name)(*args)
