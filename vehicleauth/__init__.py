"""Authenticated, encrypted command sessions over P-256 ECDH with AES-GCM and HMAC."""

__version__ = "0.1.0"