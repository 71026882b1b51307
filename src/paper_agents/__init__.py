"""Autonomous paper-trading agents — simulated ledger, risk gate, analytics, scheduler."""

__version__ = "0.1.0"
