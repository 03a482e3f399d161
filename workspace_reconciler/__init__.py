"""Workspace Reconciler - remote development workspace reconciliation."""

__version__ = "0.1.0"
