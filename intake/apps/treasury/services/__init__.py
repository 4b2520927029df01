"""Wiring for the treasury services from Django settings."""

from typing import Optional

from ..alerts import OperatorAlerts
from ..config import TreasuryConfig, get_treasury_config
from .chain import ChainClient
from .locks import build_locks
from .reconcile import DepositReconciler
from .transfer import TreasuryTransferService

_locks = None


def get_locks(config: TreasuryConfig):
    """Lock backend shared by every service built in this process."""
    global _locks
    if _locks is None:
        _locks = build_locks(config)
    return _locks


def build_transfer_service(
    config: Optional[TreasuryConfig] = None, chain: Optional[ChainClient] = None
) -> TreasuryTransferService:
    from intake.apps.deposits.ledger import DepositLedger

    config = config or get_treasury_config()
    return TreasuryTransferService(
        config,
        chain or ChainClient(config),
        DepositLedger(),
        get_locks(config),
        alerts=OperatorAlerts(),
    )


def build_reconciler(config: Optional[TreasuryConfig] = None) -> DepositReconciler:
    from intake.apps.deposits.indexer import IndexerClient
    from intake.apps.deposits.ledger import DepositLedger

    config = config or get_treasury_config()
    return DepositReconciler(
        config, DepositLedger(), ChainClient(config), IndexerClient(config), get_locks(config)
    )
