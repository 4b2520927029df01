"""Gas budgeting for sponsored sweeps. Pure integer arithmetic, no I/O."""

from __future__ import annotations

from dataclasses import dataclass

from ..config import TreasuryConfig
from ..errors import InsufficientGasPayerFunds


@dataclass(frozen=True)
class GasPlan:
    gas_price: int
    approval_units: int
    approval_cost: int
    approval_gas_limit: int
    top_up_amount: int
    top_up_gas_limit: int
    transfer_reserve: int
    payer_required: int

    @property
    def needs_top_up(self) -> bool:
        return self.top_up_amount > 0


class GasBudgeter:
    def __init__(self, config: TreasuryConfig):
        self.config = config

    @staticmethod
    def budget(units: int, gas_price: int, buffer_pct: int) -> int:
        """Cost of `units` at `gas_price`, inflated by `buffer_pct` percent."""
        cost = int(units) * int(gas_price)
        return cost + cost * int(buffer_pct) // 100

    @staticmethod
    def gas_limit(units: int, buffer_pct: int) -> int:
        return int(units) + int(units) * int(buffer_pct) // 100

    @staticmethod
    def needs_top_up(native_balance: int, required_cost: int) -> bool:
        return native_balance < required_cost

    def plan(
        self, approval_units: int, gas_price: int, deposit_native: int
    ) -> GasPlan:
        """
        Work out what the run will spend before any transaction is sent.

        The deposit wallet pays for its own approve. If it holds less than the
        buffered approval cost, the gas payer tops it up by exactly that cost.
        The gas payer must also keep enough for the top-up's own gas and for
        the transferFrom it executes afterwards.
        """
        cfg = self.config
        approval_cost = self.budget(
            approval_units, gas_price, cfg.approval_gas_buffer_pct
        )
        top_up_amount = (
            approval_cost if self.needs_top_up(deposit_native, approval_cost) else 0
        )
        top_up_gas = cfg.native_transfer_gas_limit * gas_price if top_up_amount else 0
        transfer_reserve = cfg.transfer_from_gas_reserve * gas_price

        return GasPlan(
            gas_price=gas_price,
            approval_units=approval_units,
            approval_cost=approval_cost,
            approval_gas_limit=self.gas_limit(
                approval_units, cfg.transfer_gas_buffer_pct
            ),
            top_up_amount=top_up_amount,
            top_up_gas_limit=cfg.native_transfer_gas_limit,
            transfer_reserve=transfer_reserve,
            payer_required=top_up_gas + top_up_amount + transfer_reserve,
        )

    @staticmethod
    def ensure_payer_funds(plan: GasPlan, payer_native: int) -> None:
        if payer_native < plan.payer_required:
            raise InsufficientGasPayerFunds(plan.payer_required, payer_native)
