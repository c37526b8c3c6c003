"""Workforce identity reconciliation and batch synchronization service."""

__version__ = "1.0.0"
