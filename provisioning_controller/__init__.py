"""Reconciliation controller for the bare-metal provisioning subsystem."""

__version__ = "0.1.0"
