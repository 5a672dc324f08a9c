"""Validation package."""

from splitledger.validation.validator import LedgerEntryValidator

__all__ = ["LedgerEntryValidator"]
