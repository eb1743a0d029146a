"""Consent Wallet Coordinator: consent prompt detection and consent token lifecycle."""

__version__ = "1.0.0"
