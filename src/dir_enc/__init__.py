"""Encrypt ``X/`` into ``X.enc/`` and back with a single RSA key pair."""

__version__ = "1.0.0"
