"""Coursegate: passkey lifecycle and course access gating."""

__version__ = "1.0.0"
