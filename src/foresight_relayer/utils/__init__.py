"""Helper utilities for the Foresight Relayer."""

from .contract_utility import ContractUtility

__all__ = ["ContractUtility"]
