"""Cryptokey router with transport encryption, replay protection and key rotation."""

__version__ = "0.1.4"