"""Validation of ledger intents."""

from finledger.validation.validator import LedgerValidator

__all__ = ["LedgerValidator"]
