"""Parking Ledger - occupancy and settlement for a shared parking facility"""

__version__ = "0.1.0"
