"""Proposal pricing and approval service."""

__version__ = "0.1.0"
