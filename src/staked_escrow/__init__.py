"""Staked Escrow: collateral-backed agent registry and escrowed deals."""

__version__ = "0.1.0"
