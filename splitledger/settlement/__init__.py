"""Balance aggregation and settlement optimization."""

from splitledger.settlement.balances import (
    BalanceAggregator,
    compute_balances,
    zero_sum_drift,
)
from splitledger.settlement.errors import (
    LedgerError,
    MalformedLedgerError,
    SettlementInvariantError,
)
from splitledger.settlement.optimizer import (
    SettlementOptimizer,
    apply_instructions,
    minimize_transactions,
)

__all__ = [
    "BalanceAggregator",
    "LedgerError",
    "MalformedLedgerError",
    "SettlementInvariantError",
    "SettlementOptimizer",
    "apply_instructions",
    "compute_balances",
    "minimize_transactions",
    "zero_sum_drift",
]
