"""Custodial token disbursement batches and dual-signature transfers."""

__version__ = "0.1.0"
