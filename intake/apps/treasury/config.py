from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache

from eth_account import Account
from web3 import Web3

# slack for RPC reads, estimates and sends between the bounded waits
LEASE_MARGIN_SECONDS = 120


@dataclass(frozen=True)
class TreasuryConfig:
    """Everything the chain client, gas budgeter and orchestrator need.

    Built once from Django settings and handed to each component, so nothing
    below this layer reads settings or the environment on its own.
    """

    rpc_url: str
    chain_id: int
    token_address: str
    token_decimals: int
    treasury_address: str
    gas_payer_private_key: str
    fallback_gas_price_wei: int
    native_transfer_gas_limit: int = 21000
    transfer_from_gas_reserve: int = 100000
    approval_gas_buffer_pct: int = 50
    transfer_gas_buffer_pct: int = 20
    top_up_settle_seconds: float = 3.0
    receipt_timeout_seconds: int = 180
    deposit_expiry_days: int = 30
    lease_seconds: int = 900
    signer_lock_wait_seconds: int = 600
    lock_backend: str = "redis"
    redis_url: str = "redis://redis:6379/0"
    indexer_base_url: str = "https://deep-index.moralis.io/api/v2.2"
    indexer_api_key: str = ""
    indexer_chain: str = "bsc"

    @property
    def run_lease_seconds(self) -> int:
        """
        Deposit lease TTL. Never shorter than the slowest possible run: two
        gas payer signer waits, three receipt waits and the top-up settle delay.
        """
        longest_run = (
            2 * self.signer_lock_wait_seconds
            + 3 * self.receipt_timeout_seconds
            + math.ceil(self.top_up_settle_seconds)
            + LEASE_MARGIN_SECONDS
        )
        return max(self.lease_seconds, longest_run)

    @property
    def gas_payer_address(self) -> str:
        return Account.from_key(self.gas_payer_private_key).address

    @classmethod
    def from_settings(cls, settings) -> "TreasuryConfig":
        treasury = settings.TREASURY_ADDRESS
        return cls(
            rpc_url=settings.BSC_RPC_URL,
            chain_id=settings.BSC_CHAIN_ID,
            token_address=Web3.to_checksum_address(settings.USDT_CONTRACT_ADDRESS),
            token_decimals=settings.USDT_DECIMALS,
            treasury_address=Web3.to_checksum_address(treasury) if treasury else "",
            gas_payer_private_key=settings.GAS_PAYER_PRIVATE_KEY,
            fallback_gas_price_wei=Web3.to_wei(
                Decimal(str(settings.FALLBACK_GAS_PRICE_GWEI)), "gwei"
            ),
            native_transfer_gas_limit=settings.NATIVE_TRANSFER_GAS_LIMIT,
            transfer_from_gas_reserve=settings.TRANSFER_FROM_GAS_RESERVE,
            approval_gas_buffer_pct=settings.APPROVAL_GAS_BUFFER_PCT,
            transfer_gas_buffer_pct=settings.TRANSFER_GAS_BUFFER_PCT,
            top_up_settle_seconds=float(settings.TOP_UP_SETTLE_SECONDS),
            receipt_timeout_seconds=settings.RECEIPT_TIMEOUT_SECONDS,
            deposit_expiry_days=settings.DEPOSIT_EXPIRY_DAYS,
            lease_seconds=settings.TREASURY_LEASE_SECONDS,
            signer_lock_wait_seconds=settings.SIGNER_LOCK_WAIT_SECONDS,
            lock_backend=settings.LOCK_BACKEND,
            redis_url=settings.REDIS_URL,
            indexer_base_url=settings.MORALIS_BASE_URL,
            indexer_api_key=settings.MORALIS_API_KEY,
            indexer_chain=settings.MORALIS_CHAIN,
        )


@lru_cache(maxsize=1)
def get_treasury_config() -> TreasuryConfig:
    """Process-wide config, materialised on first use."""
    from django.conf import settings

    return TreasuryConfig.from_settings(settings)
