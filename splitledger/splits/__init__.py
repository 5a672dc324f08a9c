"""Split calculation package."""

from splitledger.splits.calculator import (
    SplitCalculationError,
    calculate_splits,
    equal_splits,
    exact_splits,
    percentage_splits,
)

__all__ = [
    "SplitCalculationError",
    "calculate_splits",
    "equal_splits",
    "exact_splits",
    "percentage_splits",
]
