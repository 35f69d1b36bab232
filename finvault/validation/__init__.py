"""Validation package."""

from finvault.validation.validator import OperationValidator

__all__ = ["OperationValidator"]
